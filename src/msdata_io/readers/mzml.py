"""mzML reader implementation.

Front door over the structural parser and the offset index. Sequential
iteration streams the document once and never needs an index; random
access builds (or loads) the index on first use.

Path sources open a fresh file handle for every random read, so
get_by_id is safe to call from several threads at once. Stream sources
share one cursor: random reads take a lock and restore the cursor, and
a non-seekable stream supports sequential iteration only.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from pathlib import Path
from types import TracebackType
from typing import BinaryIO, TypeVar

from msdata_io._elements import BinaryResolver
from msdata_io._exceptions import IndexUnavailableError, MalformedDocumentError
from msdata_io.codecs.registry import CodecRegistry, default_registry
from msdata_io.config import load_settings
from msdata_io.index import OffsetIndex, build_index
from msdata_io.logging import get_logger
from msdata_io.parser import StructuralParser
from msdata_io.types.common import ErrorPolicy, RecordKind
from msdata_io.types.document import DocumentMeta
from msdata_io.types.record import Record, RecordDiagnostic

_logger = get_logger(__name__)

_T = TypeVar("_T")


def _is_mzml_file(path: Path) -> bool:
    """Check if path is an mzML file."""
    return path.is_file() and path.suffix.lower() == ".mzml"


class MzMLReader:
    """Reader for mzML and indexedmzML documents.

    Args:
        source: Path to the document, or an open binary stream.
        registry: Codec registry. Defaults to default_registry().
        policy: "skip" or "raise" for record-scoped errors. Defaults to
            MSDATA_IO_ERROR_POLICY.
        chunk_size: Bytes per read while scanning. Defaults to
            MSDATA_IO_CHUNK_SIZE.
        sidecar_path: Side-car index location (path sources default to
            "<file>.msidx.json").
        index: Pre-built index; skips index discovery.
        binary_resolver: Resolver for arrays stored outside the XML.
    """

    def __init__(
        self,
        source: Path | str | BinaryIO,
        *,
        registry: CodecRegistry | None = None,
        policy: ErrorPolicy | None = None,
        chunk_size: int | None = None,
        sidecar_path: Path | None = None,
        index: OffsetIndex | None = None,
        binary_resolver: BinaryResolver | None = None,
    ) -> None:
        if policy is None or chunk_size is None:
            settings = load_settings()
            policy = policy if policy is not None else settings["error_policy"]
            chunk_size = chunk_size if chunk_size is not None else settings["chunk_size"]
        self._path: Path | None = None
        self._stream: BinaryIO | None = None
        if isinstance(source, (str, Path)):
            self._path = Path(source)
            self._label = str(self._path)
        else:
            self._stream = source
            self._label = "<stream>"
        self._registry = registry if registry is not None else default_registry()
        self._policy: ErrorPolicy = policy
        self._chunk_size = chunk_size
        self._sidecar_path = sidecar_path
        self._index = index
        self._binary_resolver = binary_resolver
        self._metadata: DocumentMeta | None = None
        self._diagnostics: list[RecordDiagnostic] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def source(self) -> str:
        return self._label

    @staticmethod
    def supports_format(path: Path) -> bool:
        """Check if path is an mzML file."""
        return _is_mzml_file(path)

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError(f"reader is closed: {self._label}")

    def _parser(self, handle: BinaryIO) -> StructuralParser:
        groups = self._metadata["param_groups"] if self._metadata is not None else None
        return StructuralParser(
            handle,
            self._registry,
            policy=self._policy,
            chunk_size=self._chunk_size,
            binary_resolver=self._binary_resolver,
            param_groups=groups,
            label=self._label,
        )

    def _iter_all(self) -> Generator[Record, None, None]:
        self._check_open()
        if self._path is not None:
            with self._path.open("rb") as handle:
                yield from self._iter_handle(handle)
            return
        if self._stream is None:
            raise IndexUnavailableError(self._label, "reader has no source")
        yield from self._iter_handle(self._stream)

    def _iter_handle(self, handle: BinaryIO) -> Generator[Record, None, None]:
        parser = self._parser(handle)
        count = 0
        try:
            for record in parser.iter_records():
                if self._metadata is None:
                    self._metadata = parser.metadata
                count += 1
                yield record
        finally:
            self._diagnostics.extend(parser.diagnostics)
        if self._metadata is None:
            self._metadata = parser.metadata
        _logger.debug(
            "read %d records",
            count,
            extra={"source": self._label, "count": count},
        )

    def __iter__(self) -> Generator[Record, None, None]:
        return self._iter_all()

    def iter_records(self) -> Generator[Record, None, None]:
        """Iterate over spectra then chromatograms in document order.

        Raises:
            MalformedDocumentError: If the document grammar breaks.
        """
        return self._iter_all()

    def iter_spectra(self) -> Generator[Record, None, None]:
        for record in self._iter_all():
            if record["kind"] == "spectrum":
                yield record

    def iter_chromatograms(self) -> Generator[Record, None, None]:
        for record in self._iter_all():
            if record["kind"] == "chromatogram":
                yield record

    @property
    def diagnostics(self) -> list[RecordDiagnostic]:
        return list(self._diagnostics)

    @property
    def metadata(self) -> DocumentMeta:
        """Document metadata from the preamble, parsed on first access."""
        self._check_open()
        if self._metadata is None:
            self._metadata = self._positioned(lambda parser: parser.read_preamble())
        return self._metadata

    @property
    def index(self) -> OffsetIndex:
        """Offset index, built on first access.

        Raises:
            IndexUnavailableError: If the source is a non-seekable stream.
        """
        self._check_open()
        if self._index is None:
            if self._path is not None:
                self._index = build_index(self._path, sidecar_path=self._sidecar_path, chunk_size=self._chunk_size)
            elif self._stream is not None:
                stream = self._stream
                with self._lock:
                    if not stream.seekable():
                        raise IndexUnavailableError(self._label, "cannot index a non-seekable stream")
                    position = stream.tell()
                    try:
                        self._index = build_index(stream, sidecar_path=self._sidecar_path, chunk_size=self._chunk_size)
                    finally:
                        stream.seek(position)
            else:
                raise IndexUnavailableError(self._label, "reader has no source")
            _logger.debug(
                "index ready",
                extra={"source": self._label, "strategy": self._index.strategy, "count": len(self._index)},
            )
        return self._index

    def _positioned(self, action: Callable[[StructuralParser], _T]) -> _T:
        if self._path is not None:
            with self._path.open("rb") as handle:
                return action(self._parser(handle))
        stream = self._stream
        if stream is None:
            raise IndexUnavailableError(self._label, "reader has no source")
        with self._lock:
            if not stream.seekable():
                raise IndexUnavailableError(self._label, "source does not support seeking")
            position = stream.tell()
            try:
                return action(self._parser(stream))
            finally:
                stream.seek(position)

    def _read_at(self, offset: int, kind: RecordKind) -> Record:
        # Param groups from the preamble apply to every record.
        _ = self.metadata
        return self._positioned(lambda parser: parser.read_at(offset, kind))

    def get_by_id(self, identifier: str, kind: RecordKind = "spectrum") -> Record:
        """Read one record by identifier through the offset index.

        Args:
            identifier: Native identifier.
            kind: Record namespace.

        Returns:
            Record TypedDict.

        Raises:
            UnknownRecordError: If identifier is not in the index.
            IndexUnavailableError: If the source cannot be read randomly.
            MalformedDocumentError: If the index points at another record.
        """
        offset = self.index.lookup(identifier, kind)
        record = self._read_at(offset, kind)
        if record["id"] != identifier:
            raise MalformedDocumentError(
                self._label,
                f"index entry for {identifier!r} points at {record['id']!r}",
                offset,
            )
        return record

    def get_by_index(self, position: int, kind: RecordKind = "spectrum") -> Record:
        """Read one record by ordinal position in document order.

        Raises:
            UnknownRecordError: If position is out of range.
        """
        entry = self.index.by_position(position, kind)
        return self.get_by_id(entry["id"], kind)

    def get_chromatogram(self, identifier: str) -> Record:
        return self.get_by_id(identifier, "chromatogram")

    def resolve_precursor(self, record: Record) -> Record | None:
        """Follow the first precursor's spectrum reference.

        Returns:
            The precursor spectrum, or None if no reference is recorded.

        Raises:
            UnknownRecordError: If the reference names a missing spectrum.
        """
        for precursor in record["precursors"]:
            ref = precursor["spectrum_ref"]
            if ref is not None:
                return self.get_by_id(ref, "spectrum")
        return None

    def close(self) -> None:
        self._closed = True
        self._index = None

    def __enter__(self) -> MzMLReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = [
    "MzMLReader",
]
