"""Exception hierarchy for msdata_io library.

Array-level codec errors propagate to the caller of the codec functions.
The structural parser turns record-scoped errors into diagnostics and
continues; document-scoped errors abort the parse.
"""

from __future__ import annotations


class MsDataIOError(Exception):
    """Base exception for msdata_io library.

    All library exceptions inherit from this base class.
    """


class CodecError(MsDataIOError):
    """Base class for errors raised while transforming one binary array."""


class MalformedEncodingError(CodecError):
    """Raised when encoded text contains characters outside its alphabet.

    Attributes:
        encoding: Name of the text encoding (e.g. "base64").
        message: Description of the failure.
    """

    def __init__(self, encoding: str, message: str) -> None:
        self.encoding = encoding
        self.message = message
        super().__init__(f"{encoding}: {message}")


class CodecFailureError(CodecError):
    """Raised when a decompression or compression transform fails.

    Attributes:
        codec: Name of the failing compression scheme.
        diagnostic: Message of the underlying transform error.
    """

    def __init__(self, codec: str, diagnostic: str) -> None:
        self.codec = codec
        self.diagnostic = diagnostic
        super().__init__(f"{codec} transform failed: {diagnostic}")


class TruncatedArrayError(CodecError):
    """Raised when a decoded buffer does not hold a whole number of elements.

    Also raised when the decoded element count differs from the declared one.

    Attributes:
        expected: Expected element count or element width in bytes.
        actual: Observed element count or buffer length in bytes.
        message: Description of the failure.
    """

    def __init__(self, expected: int, actual: int, message: str) -> None:
        self.expected = expected
        self.actual = actual
        self.message = message
        super().__init__(f"{message} (expected {expected}, got {actual})")


class ChecksumMismatchError(CodecError):
    """Raised when decoded bytes do not match their declared checksum.

    This condition is recoverable: readers report it as a diagnostic and
    return the array flagged as unverified.

    Attributes:
        expected: Declared checksum.
        actual: Checksum computed over the decoded bytes.
    """

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch: declared {expected}, computed {actual}")


class UnsupportedCodecError(CodecError):
    """Raised when a codec descriptor component cannot be resolved.

    Attributes:
        component: Which component failed ("compression", "encoding", "dtype",
            "byte_order").
        value: The unresolved value.
    """

    def __init__(self, component: str, value: str) -> None:
        self.component = component
        self.value = value
        super().__init__(f"Unsupported {component}: {value}")


class RecordScopedError(MsDataIOError):
    """Base class for errors confined to a single record.

    Attributes:
        record_id: Identifier of the offending record ("" if unknown).
        message: Description of the failure.
    """

    def __init__(self, record_id: str, message: str) -> None:
        self.record_id = record_id
        self.message = message
        super().__init__(f"{record_id}: {message}")


class RecordInvariantError(RecordScopedError):
    """Raised when a record violates a structural invariant.

    Typical cause: co-indexed arrays of different lengths.
    """


class RecordSyntaxError(RecordScopedError):
    """Raised when a record's markup cannot be parsed.

    The record boundaries were found, so parsing continues with the next one.
    """


class UnknownRecordError(MsDataIOError, KeyError):
    """Raised when an identifier is not present in the offset index.

    Attributes:
        identifier: The identifier that was looked up.
        kind: Record namespace ("spectrum" or "chromatogram").
    """

    def __init__(self, identifier: str, kind: str) -> None:
        self.identifier = identifier
        self.kind = kind
        super().__init__(f"Unknown {kind}: {identifier}")

    def __str__(self) -> str:
        return f"Unknown {self.kind}: {self.identifier}"


class IndexUnavailableError(MsDataIOError):
    """Raised when random access is requested but cannot be honoured.

    Attributes:
        path: Source description.
        message: Description of why random access is unavailable.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class InvalidIndexError(MsDataIOError):
    """Raised when an embedded or side-car index fails validation.

    Index builders catch it and fall back to a linear scan.

    Attributes:
        path: Source description.
        message: Description of the defect.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class MalformedDocumentError(MsDataIOError):
    """Raised when the document grammar breaks; aborts the whole parse.

    Attributes:
        path: Source description.
        message: Description of the failure.
        offset: Byte offset at which the grammar broke (None if unknown).
    """

    def __init__(self, path: str, message: str, offset: int | None) -> None:
        self.path = path
        self.message = message
        self.offset = offset
        where = f" at byte {offset}" if offset is not None else ""
        super().__init__(f"{message}{where}: {path}")


class WriterError(MsDataIOError):
    """Raised when writing output fails.

    Attributes:
        path: The output path.
        message: Description of the failure.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class MGFReadError(MsDataIOError):
    """Raised when MGF peak list file reading fails.

    Attributes:
        path: The .mgf file path.
        message: Description of the failure.
    """

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


__all__ = [
    "ChecksumMismatchError",
    "CodecError",
    "CodecFailureError",
    "IndexUnavailableError",
    "InvalidIndexError",
    "MGFReadError",
    "MalformedDocumentError",
    "MalformedEncodingError",
    "MsDataIOError",
    "RecordInvariantError",
    "RecordScopedError",
    "RecordSyntaxError",
    "TruncatedArrayError",
    "UnknownRecordError",
    "UnsupportedCodecError",
    "WriterError",
]
