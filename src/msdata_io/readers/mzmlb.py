"""mzMLb reader implementation.

An mzMLb file is an HDF5 container holding the mzML XML as a byte
dataset named "mzML", numeric arrays in their own datasets, and the
offset index as the datasets "mzML_spectrumIndex" and
"mzML_spectrumIndex_idRef" (plus the chromatogram equivalents).

The XML runs through the same structural parser as plain mzML; arrays
reference their dataset with external-reference cvParams and resolve
through a binary resolver. h5py is accessed through hooks.open_h5.
"""

from __future__ import annotations

import io
from collections.abc import Generator
from pathlib import Path
from types import TracebackType

import numpy as np

from msdata_io._exceptions import InvalidIndexError, MalformedDocumentError, MalformedEncodingError, TruncatedArrayError
from msdata_io._protocols.h5py import H5FileProtocol
from msdata_io.codecs.registry import CodecRegistry
from msdata_io.index import OffsetIndex
from msdata_io.logging import get_logger
from msdata_io.readers.mzml import MzMLReader
from msdata_io.testing import hooks
from msdata_io.types.common import ErrorPolicy, RecordKind
from msdata_io.types.document import DocumentMeta
from msdata_io.types.index import IndexEntry, make_entry
from msdata_io.types.record import Record, RecordDiagnostic

_logger = get_logger(__name__)

XML_DATASET = "mzML"
INDEX_DATASETS: dict[RecordKind, str] = {
    "spectrum": "mzML_spectrumIndex",
    "chromatogram": "mzML_chromatogramIndex",
}
ID_REF_SUFFIX = "_idRef"


def _is_mzmlb_file(path: Path) -> bool:
    """Check if path is an mzMLb file."""
    return path.is_file() and path.suffix.lower() == ".mzmlb"


def _dataset_bytes(h5: H5FileProtocol, name: str) -> bytes:
    data = h5[name][:]
    return np.ascontiguousarray(data).tobytes()


def _split_id_refs(raw: bytes) -> list[str]:
    """Split the null-terminated identifier dataset."""
    parts = raw.split(b"\x00")
    if parts and parts[-1] == b"":
        parts.pop()
    return [p.decode("utf-8") for p in parts]


def _read_namespace(h5: H5FileProtocol, xml: bytes, kind: RecordKind, source: str) -> list[IndexEntry]:
    name = INDEX_DATASETS[kind]
    if name not in h5:
        return []
    id_name = name + ID_REF_SUFFIX
    if id_name not in h5:
        raise InvalidIndexError(source, f"{name} has no {id_name}")
    offsets = [int(v) for v in h5[name][:]]
    ids = _split_id_refs(_dataset_bytes(h5, id_name))
    if len(offsets) < len(ids):
        raise InvalidIndexError(source, f"{name} has {len(offsets)} offsets for {len(ids)} ids")
    start_tag = f"<{kind}".encode("ascii")
    entries: list[IndexEntry] = []
    for identifier, offset in zip(ids, offsets, strict=False):
        if xml[offset : offset + len(start_tag)] != start_tag:
            raise InvalidIndexError(source, f"offset {offset} is not a {kind} start tag")
        entries.append(make_entry(identifier, offset))
    return entries


def read_mzmlb_index(h5: H5FileProtocol, xml: bytes, source: str = "") -> OffsetIndex | None:
    """Read the index datasets of an mzMLb container.

    Returns:
        OffsetIndex with strategy "embedded", or None if the container
        carries no spectrum index.

    Raises:
        InvalidIndexError: If the datasets disagree with the XML.
    """
    if INDEX_DATASETS["spectrum"] not in h5:
        return None
    spectra = _read_namespace(h5, xml, "spectrum", source)
    chromatograms = _read_namespace(h5, xml, "chromatogram", source)
    return OffsetIndex(spectra, chromatograms, "embedded", source)


class MzMLbReader:
    """Reader for mzMLb containers.

    Offers the same surface as MzMLReader. The HDF5 file stays open until
    close().

    Args:
        path: Path to the .mzMLb file.
        registry: Codec registry. Defaults to default_registry().
        policy: "skip" or "raise" for record-scoped errors.
        chunk_size: Bytes per read while scanning the XML.

    Raises:
        MalformedDocumentError: If the container has no mzML dataset.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        registry: CodecRegistry | None = None,
        policy: ErrorPolicy | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self._path = Path(path)
        self._h5 = hooks.open_h5(self._path, "r")
        if XML_DATASET not in self._h5:
            self._h5.close()
            raise MalformedDocumentError(str(self._path), f"no {XML_DATASET} dataset", None)
        xml = _dataset_bytes(self._h5, XML_DATASET)
        index: OffsetIndex | None
        try:
            index = read_mzmlb_index(self._h5, xml, str(self._path))
        except InvalidIndexError as e:
            _logger.warning(
                "mzMLb index rejected: %s",
                e.message,
                extra={"source": str(self._path), "strategy": "embedded", "error_type": type(e).__name__},
            )
            index = None
        self._inner = MzMLReader(
            io.BytesIO(xml),
            registry=registry,
            policy=policy,
            chunk_size=chunk_size,
            index=index,
            binary_resolver=self._resolve,
        )

    @property
    def source(self) -> str:
        return str(self._path)

    @staticmethod
    def supports_format(path: Path) -> bool:
        """Check if path is an mzMLb file."""
        return _is_mzmlb_file(path)

    def _resolve(self, dataset: str, offset: int, length: int) -> bytes:
        """Read length elements of dataset starting at offset as little-endian bytes."""
        if dataset not in self._h5:
            raise MalformedEncodingError("external", f"no dataset {dataset!r} in {self._path}")
        values = self._h5[dataset][offset : offset + length]
        if int(values.shape[0]) != length:
            raise TruncatedArrayError(length, int(values.shape[0]), f"dataset {dataset} ends early")
        return np.ascontiguousarray(values, dtype=values.dtype.newbyteorder("<")).tobytes()

    def __iter__(self) -> Generator[Record, None, None]:
        return self._inner.iter_records()

    def iter_records(self) -> Generator[Record, None, None]:
        return self._inner.iter_records()

    def iter_spectra(self) -> Generator[Record, None, None]:
        return self._inner.iter_spectra()

    def iter_chromatograms(self) -> Generator[Record, None, None]:
        return self._inner.iter_chromatograms()

    @property
    def index(self) -> OffsetIndex:
        return self._inner.index

    @property
    def metadata(self) -> DocumentMeta:
        return self._inner.metadata

    @property
    def diagnostics(self) -> list[RecordDiagnostic]:
        return self._inner.diagnostics

    def get_by_id(self, identifier: str, kind: RecordKind = "spectrum") -> Record:
        """Read one record by identifier.

        Raises:
            UnknownRecordError: If identifier is not in the index.
        """
        return self._inner.get_by_id(identifier, kind)

    def get_by_index(self, position: int, kind: RecordKind = "spectrum") -> Record:
        return self._inner.get_by_index(position, kind)

    def get_chromatogram(self, identifier: str) -> Record:
        return self._inner.get_chromatogram(identifier)

    def resolve_precursor(self, record: Record) -> Record | None:
        return self._inner.resolve_precursor(record)

    def close(self) -> None:
        self._inner.close()
        self._h5.close()

    def __enter__(self) -> MzMLbReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = [
    "INDEX_DATASETS",
    "XML_DATASET",
    "MzMLbReader",
    "read_mzmlb_index",
]
