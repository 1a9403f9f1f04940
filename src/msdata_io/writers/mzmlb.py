"""mzMLb writer implementation.

The XML is staged in "<path>.partial" by the mzML writer machinery, with
every array replaced by an empty <binary/> and external-reference
cvParams. close() then creates the HDF5 container at the final path
holding the XML, one dataset per (kind, role, type) and the index
datasets.

Arrays declared "none" or "zlib" are stored as typed datasets and rely
on HDF5 gzip filtering; numpress arrays are stored as their encoded
bytes in uint8 datasets.
"""

from __future__ import annotations

import re
from pathlib import Path

import numpy as np
from lxml import etree
from numpy.typing import NDArray

from msdata_io._elements import EXTERNAL_DATASET, EXTERNAL_LENGTH, EXTERNAL_OFFSET, NON_STANDARD_ARRAY
from msdata_io._exceptions import WriterError
from msdata_io._protocols.h5py import H5FileProtocol
from msdata_io._version import __version__
from msdata_io.binary import array_checksum, encode_array
from msdata_io.codecs.registry import CodecRegistry, numpy_dtype
from msdata_io.logging import get_logger
from msdata_io.readers.mzmlb import ID_REF_SUFFIX, INDEX_DATASETS, XML_DATASET
from msdata_io.record import make_cv_param
from msdata_io.testing import hooks
from msdata_io.types.codec import CodecDescriptor, make_descriptor
from msdata_io.types.common import RecordKind
from msdata_io.types.document import DocumentMeta
from msdata_io.types.index import IndexStrategy
from msdata_io.types.record import NumericArray
from msdata_io.writers.mzml import MzMLWriter, add_array_params, add_cv_param, role_param

_logger = get_logger(__name__)

_GZIP_LEVEL = 4
_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9]+")


def _dataset_name(kind: RecordKind, array: NumericArray, suffix: str) -> str:
    accession = role_param(array["role"])["accession"]
    key = accession.replace(":", "_")
    if accession == NON_STANDARD_ARRAY:
        key = f"{key}_{_NAME_UNSAFE.sub('_', array['role']).strip('_')}"
    return f"{kind}_{key}_{suffix}"


def _create_dataset(h5: H5FileProtocol, name: str, data: NDArray[np.generic], *, gzip: bool) -> None:
    # HDF5 filters need chunked storage, which empty datasets cannot have.
    if gzip and data.size > 0:
        h5.create_dataset(name, data=data, compression="gzip", compression_opts=_GZIP_LEVEL)
    else:
        h5.create_dataset(name, data=data, compression=None, compression_opts=None)


class MzMLbWriter(MzMLWriter):
    """Incremental writer for mzMLb containers.

    Takes the same arguments as MzMLWriter except index_mode: the index
    always lives in the container's index datasets.

    Raises:
        WriterError: If the staging file cannot be created.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        registry: CodecRegistry | None = None,
        default_descriptors: dict[str, CodecDescriptor] | None = None,
        spectrum_count: int | None = None,
        chromatogram_count: int | None = None,
        metadata: DocumentMeta | None = None,
        run_id: str | None = None,
    ) -> None:
        self._chunks: dict[str, list[NDArray[np.generic]]] = {}
        self._sizes: dict[str, int] = {}
        super().__init__(
            path,
            registry=registry,
            default_descriptors=default_descriptors,
            index_mode="none",
            spectrum_count=spectrum_count,
            chromatogram_count=chromatogram_count,
            metadata=metadata,
            run_id=run_id,
        )

    def _append(self, dataset: str, data: NDArray[np.generic]) -> int:
        offset = self._sizes.get(dataset, 0)
        self._chunks.setdefault(dataset, []).append(data)
        self._sizes[dataset] = offset + int(data.shape[0])
        return offset

    def _add_binary_array(
        self,
        parent: etree._Element,
        array: NumericArray,
        descriptor: CodecDescriptor,
        kind: RecordKind,
    ) -> None:
        if descriptor["compression"] in ("none", "zlib"):
            stored = make_descriptor(compression="none", dtype=descriptor["dtype"], encoding="none")
            data: NDArray[np.generic] = np.ascontiguousarray(
                array["values"], dtype=numpy_dtype(stored["dtype"], "little")
            )
            checksum = array_checksum(data, stored, self._registry)
            dataset = _dataset_name(kind, array, stored["dtype"])
        else:
            stored = make_descriptor(compression=descriptor["compression"], dtype=descriptor["dtype"], encoding="none")
            encoded = encode_array(array["values"], stored, self._registry)
            data = np.frombuffer(encoded["payload"], dtype=np.uint8)
            checksum = encoded["checksum"]
            dataset = _dataset_name(kind, array, stored["compression"].replace("+", "_"))
        offset = self._append(dataset, data)
        length = int(data.shape[0])

        el = etree.SubElement(parent, "binaryDataArray")
        if array["series"] is not None:
            el.set("arrayLength", str(int(np.asarray(array["values"]).shape[0])))
        el.set("encodedLength", "0")
        add_array_params(el, array, stored, self._registry, checksum)
        add_cv_param(el, make_cv_param(EXTERNAL_DATASET, "external HDF5 dataset", dataset))
        add_cv_param(el, make_cv_param(EXTERNAL_OFFSET, "external offset", offset))
        add_cv_param(el, make_cv_param(EXTERNAL_LENGTH, "external array length", length))
        etree.SubElement(el, "binary")

    def _index_arrays(self, kind: RecordKind, xml_size: int) -> tuple[NDArray[np.int64], NDArray[np.uint8]]:
        entries = self._entries[kind]
        offsets = [e["offset"] for e in entries]
        if entries:
            last = entries[-1]
            offsets.append(last["offset"] + (last["length"] or 0))
        else:
            offsets.append(xml_size)
        ids = b"".join(e["id"].encode("utf-8") + b"\x00" for e in entries)
        return np.array(offsets, dtype=np.int64), np.frombuffer(ids, dtype=np.uint8)

    def _index_strategy(self) -> IndexStrategy:
        return "embedded"

    def _publish(self) -> None:
        """Build the HDF5 container from the staged XML and array chunks."""
        try:
            xml = self._partial.read_bytes()
        except OSError as e:
            raise WriterError(str(self._path), f"cannot read staged XML: {e}") from e
        try:
            with hooks.open_h5(self._path, "w") as h5:
                h5.attrs["version"] = f"mzMLb 1.0 (msdata_io {__version__})"
                _create_dataset(h5, XML_DATASET, np.frombuffer(xml, dtype=np.uint8), gzip=True)
                for name, chunks in self._chunks.items():
                    _create_dataset(h5, name, np.concatenate(chunks), gzip=True)
                for kind, index_name in INDEX_DATASETS.items():
                    if kind == "chromatogram" and not self._entries[kind]:
                        continue
                    offsets, ids = self._index_arrays(kind, len(xml))
                    _create_dataset(h5, index_name, offsets, gzip=False)
                    _create_dataset(h5, index_name + ID_REF_SUFFIX, ids, gzip=False)
            self._partial.unlink()
        except OSError as e:
            raise WriterError(str(self._path), f"cannot write HDF5 container: {e}") from e
        _logger.info(
            "wrote %d spectra, %d chromatograms, %d array datasets",
            len(self._entries["spectrum"]),
            len(self._entries["chromatogram"]),
            len(self._chunks),
            extra={"source": str(self._path), "strategy": "embedded"},
        )


__all__ = [
    "MzMLbWriter",
]
