"""Streaming structural parser for mzML documents.

Record boundaries are found by scanning raw bytes chunk by chunk; only
the bytes of one record at a time are handed to the XML parser. This
keeps memory bounded by the chunk size plus the largest record, and
yields the exact byte offset of every record start tag, which is what
the offset index stores.

State machine:

    PREAMBLE -> IN_RECORD_LIST -> IN_RECORD -> RECORD_COMPLETE
             -> IN_RECORD_LIST ... -> DONE

A record that cannot be parsed moves to RECORD_ERROR (the record is
dropped, a diagnostic is kept, parsing resumes at the next record). A
break in the document grammar moves to MALFORMED and raises
MalformedDocumentError with the byte offset; nothing after it is read.
"""

from __future__ import annotations

import re
from collections.abc import Generator
from enum import Enum
from typing import BinaryIO, TypedDict
from xml.sax.saxutils import unescape

from lxml import etree

from msdata_io._elements import BinaryResolver, FragmentContext, parse_preamble, parse_record
from msdata_io._exceptions import (
    CodecError,
    IndexUnavailableError,
    MalformedDocumentError,
    RecordScopedError,
)
from msdata_io.codecs.registry import CodecRegistry
from msdata_io.config import DEFAULT_CHUNK_SIZE
from msdata_io.logging import get_logger
from msdata_io.types.common import ErrorPolicy, RecordKind
from msdata_io.types.document import DocumentMeta, ParamGroup, empty_document_meta
from msdata_io.types.record import Record, RecordDiagnostic

_logger = get_logger(__name__)

# Longest literal any boundary pattern needs to see in one piece.
_OVERLAP = 64

_LIST_START_OR_RUN_END = re.compile(rb"<(spectrumList|chromatogramList)[\s>/]|</(run)\s*>")
_LIST_EVENT = re.compile(rb"<(spectrum|chromatogram)[\s>/]|</(spectrumList|chromatogramList)\s*>")
_RECORD_START = re.compile(rb"<(spectrum|chromatogram)[\s>/]")
_TAG_CLOSE = re.compile(rb">")
_RECORD_END: dict[str, re.Pattern[bytes]] = {
    "spectrum": re.compile(rb"</spectrum\s*>"),
    "chromatogram": re.compile(rb"</chromatogram\s*>"),
}
_ID_ATTR = re.compile(rb"""\sid\s*=\s*(["'])(.*?)\1""", re.S)
_COUNT_ATTR = re.compile(rb"""\scount\s*=\s*["'](\d+)["']""")

_LIST_KINDS: dict[str, RecordKind] = {
    "spectrumList": "spectrum",
    "chromatogramList": "chromatogram",
}


class ParserState(Enum):
    """Position of the parser in the document grammar."""

    PREAMBLE = "preamble"
    IN_RECORD_LIST = "in_record_list"
    IN_RECORD = "in_record"
    RECORD_COMPLETE = "record_complete"
    RECORD_ERROR = "record_error"
    DONE = "done"
    MALFORMED = "malformed"


class ScannedRecord(TypedDict):
    """Boundary of one record found by a linear scan.

    Attributes:
        kind: Record namespace.
        id: Record identifier from the start tag.
        offset: Byte offset of the start tag.
        length: Byte length through the end tag.
    """

    kind: RecordKind
    id: str
    offset: int
    length: int


class _Hit(TypedDict):
    start: int
    end: int
    name: str


class _ChunkBuffer:
    """Sliding window over a binary stream addressed by absolute offsets."""

    def __init__(self, stream: BinaryIO, base: int, chunk_size: int) -> None:
        self._stream = stream
        self._buf = bytearray()
        self._base = base
        self._chunk_size = chunk_size
        self._eof = False

    @property
    def base(self) -> int:
        return self._base

    @property
    def end(self) -> int:
        return self._base + len(self._buf)

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._stream.read(self._chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._buf.extend(chunk)
        return True

    def search(self, pattern: re.Pattern[bytes], start: int) -> _Hit | None:
        """Find pattern at or after absolute offset start, reading as needed."""
        pos = max(start - self._base, 0)
        while True:
            m = pattern.search(self._buf, pos)
            if m is not None:
                name = next((g for g in m.groups() if g is not None), b"")
                return _Hit(start=self._base + m.start(), end=self._base + m.end(), name=name.decode("ascii"))
            pos = max(pos, len(self._buf) - _OVERLAP)
            if not self._fill():
                return None

    def slice(self, start: int, end: int) -> bytes:
        return bytes(self._buf[start - self._base : end - self._base])

    def discard_before(self, offset: int) -> None:
        drop = offset - self._base
        if drop > 0:
            del self._buf[:drop]
            self._base = offset


def start_tag_id(fragment: bytes) -> str:
    """Extract the id attribute of the first start tag in fragment."""
    tag_end = fragment.find(b">")
    m = _ID_ATTR.search(fragment, 0, tag_end if tag_end >= 0 else len(fragment))
    if m is None:
        return ""
    return unescape(m.group(2).decode("utf-8"), {"&quot;": '"', "&apos;": "'"})


class StructuralParser:
    """Sequential and random-access record parser over one byte source.

    A parser instance owns no file handle; the caller opens and closes the
    source. Sequential iteration and random access on the same instance
    must not interleave.
    """

    def __init__(
        self,
        source: BinaryIO,
        registry: CodecRegistry,
        *,
        policy: ErrorPolicy = "skip",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        binary_resolver: BinaryResolver | None = None,
        param_groups: dict[str, ParamGroup] | None = None,
        label: str = "<stream>",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._source = source
        self._registry = registry
        self._policy: ErrorPolicy = policy
        self._chunk_size = chunk_size
        self._binary_resolver = binary_resolver
        self._param_groups: dict[str, ParamGroup] = param_groups if param_groups is not None else {}
        self._label = label
        self._state = ParserState.PREAMBLE
        self._diagnostics: list[RecordDiagnostic] = []
        self._metadata: DocumentMeta | None = None

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def diagnostics(self) -> list[RecordDiagnostic]:
        return list(self._diagnostics)

    @property
    def metadata(self) -> DocumentMeta | None:
        return self._metadata

    def _context(self) -> FragmentContext:
        return FragmentContext(
            self._registry,
            param_groups=self._param_groups,
            binary_resolver=self._binary_resolver,
            strict=self._policy == "raise",
        )

    def _malformed(self, message: str, offset: int | None) -> MalformedDocumentError:
        self._state = ParserState.MALFORMED
        return MalformedDocumentError(self._label, message, offset)

    def _rewind(self) -> int:
        # Non-seekable streams are read from their current position, which
        # becomes offset 0.
        if self._source.seekable():
            self._source.seek(0)
        return 0

    def _read_preamble(self, buf: _ChunkBuffer) -> _Hit | None:
        hit = buf.search(_LIST_START_OR_RUN_END, buf.base)
        preamble_end = hit["start"] if hit is not None else buf.end
        try:
            meta = parse_preamble(buf.slice(buf.base, preamble_end))
        except etree.XMLSyntaxError as e:
            raise self._malformed(f"malformed preamble: {e}", None) from e
        self._metadata = meta
        self._param_groups = dict(meta["param_groups"])
        return hit

    def read_preamble(self) -> DocumentMeta:
        """Parse document metadata from the start of the source.

        Raises:
            MalformedDocumentError: If the preamble markup is malformed.
        """
        buf = _ChunkBuffer(self._source, self._rewind(), self._chunk_size)
        hit = self._read_preamble(buf)
        meta = self._metadata if self._metadata is not None else empty_document_meta()
        if hit is not None and hit["name"] == "spectrumList":
            self._apply_count(buf, hit, "spectrum", meta)
        return meta

    def _start_tag(self, buf: _ChunkBuffer, hit: _Hit) -> bytes:
        close = buf.search(_TAG_CLOSE, hit["end"] - 1)
        if close is None:
            raise self._malformed(f"unterminated <{hit['name']}> start tag", hit["start"])
        return buf.slice(hit["start"], close["end"])

    def _apply_count(self, buf: _ChunkBuffer, hit: _Hit, kind: RecordKind, meta: DocumentMeta) -> bytes:
        tag = self._start_tag(buf, hit)
        m = _COUNT_ATTR.search(tag)
        count = int(m.group(1)) if m is not None else None
        if kind == "spectrum":
            meta["spectrum_count"] = count
        else:
            meta["chromatogram_count"] = count
        return tag

    def _record_end(self, buf: _ChunkBuffer, kind: RecordKind, start: int) -> int:
        close = buf.search(_TAG_CLOSE, start)
        if close is None:
            raise self._malformed(f"document truncated inside <{kind}> start tag", start)
        if buf.slice(close["start"] - 1, close["start"]) == b"/":
            return close["end"]
        end = buf.search(_RECORD_END[kind], close["end"])
        if end is None:
            raise self._malformed(f"document truncated inside {kind} record", start)
        # Records never nest, so a start tag before the end tag means this one was never closed.
        nested = _RECORD_START.search(buf.slice(close["end"], end["start"]))
        if nested is not None:
            raise self._malformed(
                f"{kind} record has no end tag before the record at {close['end'] + nested.start()}",
                start,
            )
        return end["end"]

    def _walk(self, buf: _ChunkBuffer) -> Generator[tuple[RecordKind, int, int], None, None]:
        """Yield (kind, start, end) of each record in document order.

        Leaves the record bytes in buf; the consumer discards them.
        """
        self._state = ParserState.PREAMBLE
        hit = self._read_preamble(buf)
        meta = self._metadata if self._metadata is not None else empty_document_meta()
        while hit is not None and hit["name"] in _LIST_KINDS:
            list_name = hit["name"]
            list_kind = _LIST_KINDS[list_name]
            tag = self._apply_count(buf, hit, list_kind, meta)
            pos = hit["start"] + len(tag)
            self._state = ParserState.IN_RECORD_LIST
            if not tag.endswith(b"/>"):
                while True:
                    event = buf.search(_LIST_EVENT, pos)
                    if event is None:
                        raise self._malformed(f"document ended inside <{list_name}>", pos)
                    if event["name"] in _LIST_KINDS:
                        if event["name"] != list_name:
                            raise self._malformed(
                                f"</{event['name']}> closes <{list_name}>", event["start"]
                            )
                        pos = event["end"]
                        break
                    kind: RecordKind = "spectrum" if event["name"] == "spectrum" else "chromatogram"
                    self._state = ParserState.IN_RECORD
                    end = self._record_end(buf, kind, event["start"])
                    self._state = ParserState.RECORD_COMPLETE
                    yield kind, event["start"], end
                    buf.discard_before(end)
                    self._state = ParserState.IN_RECORD_LIST
                    pos = end
            hit = buf.search(_LIST_START_OR_RUN_END, pos)
        if hit is None:
            raise self._malformed("document ended before </run>", buf.end)
        self._state = ParserState.DONE

    def _complete(self, fragment: bytes, kind: RecordKind, offset: int) -> Record | None:
        try:
            record = parse_record(fragment, kind, self._context())
        except (RecordScopedError, CodecError) as e:
            self._state = ParserState.RECORD_ERROR
            record_id = start_tag_id(fragment)
            self._diagnostics.append(
                RecordDiagnostic(
                    record_id=record_id,
                    kind=kind,
                    offset=offset,
                    error_type=type(e).__name__,
                    message=str(e),
                    skipped=True,
                )
            )
            if self._policy == "raise":
                raise
            _logger.warning(
                "skipping %s %s: %s",
                kind,
                record_id,
                e,
                extra={
                    "source": self._label,
                    "record_id": record_id,
                    "record_kind": kind,
                    "offset": offset,
                    "error_type": type(e).__name__,
                },
            )
            return None
        self._note_unverified(record, offset)
        return record

    def _note_unverified(self, record: Record, offset: int) -> None:
        for role, array in record["arrays"].items():
            if array["verified"] is not False:
                continue
            self._diagnostics.append(
                RecordDiagnostic(
                    record_id=record["id"],
                    kind=record["kind"],
                    offset=offset,
                    error_type="ChecksumMismatchError",
                    message=f"checksum mismatch in {role}",
                    skipped=False,
                )
            )
            _logger.warning(
                "checksum mismatch in %s of %s",
                role,
                record["id"],
                extra={
                    "source": self._label,
                    "record_id": record["id"],
                    "record_kind": record["kind"],
                    "offset": offset,
                    "role": role,
                    "error_type": "ChecksumMismatchError",
                },
            )

    def iter_records(self) -> Generator[Record, None, None]:
        """Yield every parseable record in document order.

        Sequential mode never consults an index. Under the "skip" policy
        record-scoped errors are logged and recorded in diagnostics; under
        "raise" they propagate.

        Raises:
            MalformedDocumentError: If the document grammar breaks.
        """
        buf = _ChunkBuffer(self._source, self._rewind(), self._chunk_size)
        for kind, start, end in self._walk(buf):
            record = self._complete(buf.slice(start, end), kind, start)
            if record is not None:
                yield record

    def scan_offsets(self) -> Generator[ScannedRecord, None, None]:
        """Yield record boundaries without parsing record contents.

        Raises:
            MalformedDocumentError: If the document grammar breaks.
        """
        buf = _ChunkBuffer(self._source, self._rewind(), self._chunk_size)
        for kind, start, end in self._walk(buf):
            close = buf.search(_TAG_CLOSE, start)
            tag_end = close["end"] if close is not None else end
            yield ScannedRecord(kind=kind, id=start_tag_id(buf.slice(start, tag_end)), offset=start, length=end - start)

    def read_at(self, offset: int, kind: RecordKind | None = None) -> Record:
        """Parse exactly the record whose start tag is at offset.

        Record-scoped errors always propagate here; a checksum mismatch is
        still returned flagged unless the policy is "raise".

        Raises:
            IndexUnavailableError: If the source cannot seek.
            MalformedDocumentError: If offset is not a record start tag of
                the requested kind, or the record is truncated.
            RecordScopedError: If the record cannot be parsed.
            CodecError: If an array cannot be decoded.
        """
        if not self._source.seekable():
            raise IndexUnavailableError(self._label, "source does not support seeking")
        self._source.seek(offset)
        buf = _ChunkBuffer(self._source, offset, self._chunk_size)
        hit = buf.search(_RECORD_START, offset)
        if hit is None or hit["start"] != offset:
            raise self._malformed("offset does not point at a record start tag", offset)
        found: RecordKind = "spectrum" if hit["name"] == "spectrum" else "chromatogram"
        if kind is not None and found != kind:
            raise self._malformed(f"offset points at a {found}, expected {kind}", offset)
        end = self._record_end(buf, found, offset)
        record = parse_record(buf.slice(offset, end), found, self._context())
        self._note_unverified(record, offset)
        return record


__all__ = [
    "ParserState",
    "ScannedRecord",
    "StructuralParser",
    "start_tag_id",
]
