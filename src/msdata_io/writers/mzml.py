"""mzML writer implementation.

Streams records to "<path>.partial" and renames the file into place once
finalization succeeds. Each record is serialized with lxml as one
fragment, so its byte offset is known the moment it is written.

Index modes:
    embedded: indexedmzML wrapper with indexList, indexListOffset and
        fileChecksum.
    sidecar: plain mzML plus a "<path>.msidx.json" side-car index.
    both: the wrapper and the side-car.
    none: plain mzML only.

List counts not declared up front are written as zero-padded
placeholders and patched in place, so no byte offset moves.
"""

from __future__ import annotations

import hashlib
import weakref
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from typing import BinaryIO
from xml.sax.saxutils import quoteattr

from lxml import etree

from msdata_io._elements import (
    ARRAY_TYPES,
    BYTE_ORDER_USER_PARAM,
    CHECKSUM_USER_PARAM,
    EXTERNAL_DATASET,
    EXTERNAL_LENGTH,
    EXTERNAL_OFFSET,
    NON_STANDARD_ARRAY,
)
from msdata_io._exceptions import CodecError, WriterError
from msdata_io._version import __version__
from msdata_io.binary import encode_array
from msdata_io.codecs.registry import CodecRegistry, compression_term_name, default_registry, dtype_term_name
from msdata_io.config import IndexMode, load_settings
from msdata_io.index import OffsetIndex, document_checksum, sidecar_path_for, write_sidecar
from msdata_io.logging import get_logger
from msdata_io.record import make_cv_param
from msdata_io.types.codec import CodecDescriptor, make_descriptor
from msdata_io.types.common import ParamValue, RecordKind
from msdata_io.types.document import DocumentMeta, ParamGroup, SourceFile, empty_document_meta
from msdata_io.types.index import IndexEntry, IndexStrategy, make_entry
from msdata_io.types.record import (
    CVParam,
    NumericArray,
    ParamMap,
    Precursor,
    Product,
    Record,
    ScanEvent,
    UserParam,
)

_logger = get_logger(__name__)

MZML_NS = "http://psi.hupo.org/ms/mzml"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
PARTIAL_SUFFIX = ".partial"

_SCHEMA_LOCATION = "http://psi.hupo.org/ms/mzml http://psidev.info/files/ms/mzML/xsd/mzML1.1.0.xsd"
_INDEXED_SCHEMA_LOCATION = "http://psi.hupo.org/ms/mzml http://psidev.info/files/ms/mzML/xsd/mzML1.1.2_idx.xsd"
_COUNT_WIDTH = 10
_SOFTWARE_ID = "msdata_io"
_PROCESSING_ID = "msdata_io_conversion"
_INSTRUMENT_ID = "IC1"
_KINDS: tuple[RecordKind, ...] = ("spectrum", "chromatogram")

_ROLE_ACCESSIONS: dict[str, str] = {
    name: accession for accession, name in ARRAY_TYPES.items() if accession != NON_STANDARD_ARRAY
}
_EXTERNAL_ACCESSIONS = frozenset({EXTERNAL_DATASET, EXTERNAL_OFFSET, EXTERNAL_LENGTH})


def _cv_ref(accession: str) -> str:
    return accession.split(":", 1)[0]


def _format_value(value: ParamValue) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return repr(value)
    return str(value)


def add_cv_param(parent: etree._Element, param: CVParam) -> None:
    """Append a cvParam element."""
    el = etree.SubElement(parent, "cvParam")
    el.set("cvRef", _cv_ref(param["accession"]))
    el.set("accession", param["accession"])
    el.set("name", param["name"])
    el.set("value", _format_value(param["value"]))
    unit = param["unit_accession"]
    if unit is not None:
        el.set("unitCvRef", _cv_ref(unit))
        el.set("unitAccession", unit)


def add_user_param(parent: etree._Element, param: UserParam) -> None:
    """Append a userParam element."""
    el = etree.SubElement(parent, "userParam")
    el.set("name", param["name"])
    el.set("value", param["value"])
    if param["type"] is not None:
        el.set("type", param["type"])


def add_params(parent: etree._Element, params: ParamMap, user_params: Iterable[UserParam] = ()) -> None:
    for param in params.values():
        add_cv_param(parent, param)
    for user_param in user_params:
        add_user_param(parent, user_param)


def role_param(role: str) -> CVParam:
    """Return the array-type cvParam for a role name.

    Roles outside the controlled vocabulary become a non-standard data
    array whose value carries the name.
    """
    accession = _ROLE_ACCESSIONS.get(role)
    if accession is None:
        return make_cv_param(NON_STANDARD_ARRAY, ARRAY_TYPES[NON_STANDARD_ARRAY], role)
    return make_cv_param(accession, role)


def add_array_params(
    element: etree._Element,
    array: NumericArray,
    descriptor: CodecDescriptor,
    registry: CodecRegistry,
    checksum: str | None,
) -> None:
    """Append the dtype, compression, role and checksum parameters of an array."""
    add_cv_param(
        element,
        make_cv_param(registry.accession_for_dtype(descriptor["dtype"]), dtype_term_name(descriptor["dtype"])),
    )
    add_cv_param(
        element,
        make_cv_param(
            registry.accession_for_compression(descriptor["compression"]),
            compression_term_name(descriptor["compression"]),
        ),
    )
    params = {k: v for k, v in array["params"].items() if k not in _EXTERNAL_ACCESSIONS}
    if not any(k in ARRAY_TYPES for k in params):
        add_cv_param(element, role_param(array["role"]))
    add_params(element, params)
    if checksum is not None:
        add_user_param(element, UserParam(name=CHECKSUM_USER_PARAM, value=checksum, type=None))
    if descriptor["byte_order"] == "big":
        add_user_param(element, UserParam(name=BYTE_ORDER_USER_PARAM, value="big-endian", type=None))


def _add_scan_list(parent: etree._Element, scans: list[ScanEvent]) -> None:
    if not scans:
        return
    scan_list = etree.SubElement(parent, "scanList", count=str(len(scans)))
    for scan in scans:
        el = etree.SubElement(scan_list, "scan")
        if scan["instrument_configuration_ref"] is not None:
            el.set("instrumentConfigurationRef", scan["instrument_configuration_ref"])
        add_params(el, scan["params"])
        if scan["scan_windows"]:
            windows = etree.SubElement(el, "scanWindowList", count=str(len(scan["scan_windows"])))
            for window in scan["scan_windows"]:
                add_params(etree.SubElement(windows, "scanWindow"), window["params"])


def _add_precursor(parent: etree._Element, precursor: Precursor) -> None:
    el = etree.SubElement(parent, "precursor")
    if precursor["spectrum_ref"] is not None:
        el.set("spectrumRef", precursor["spectrum_ref"])
    if precursor["isolation_window"]:
        add_params(etree.SubElement(el, "isolationWindow"), precursor["isolation_window"])
    if precursor["selected_ions"]:
        ions = etree.SubElement(el, "selectedIonList", count=str(len(precursor["selected_ions"])))
        for ion in precursor["selected_ions"]:
            add_params(etree.SubElement(ions, "selectedIon"), ion)
    add_params(etree.SubElement(el, "activation"), precursor["activation"])


def _add_product(parent: etree._Element, product: Product) -> None:
    el = etree.SubElement(parent, "product")
    if product["isolation_window"]:
        add_params(etree.SubElement(el, "isolationWindow"), product["isolation_window"])


def _source_file_element(source_file: SourceFile) -> etree._Element:
    el = etree.Element("sourceFile", id=source_file["id"], name=source_file["name"], location=source_file["location"])
    add_params(el, source_file["params"])
    return el


def _param_group_element(group: ParamGroup) -> etree._Element:
    el = etree.Element("referenceableParamGroup", id=group["id"])
    add_params(el, group["params"], group["user_params"])
    return el


def _preamble_elements(meta: DocumentMeta) -> list[etree._Element]:
    """Build the elements that precede <run>."""
    cv_list = etree.Element("cvList", count="2")
    etree.SubElement(
        cv_list,
        "cv",
        id="MS",
        fullName="Proteomics Standards Initiative Mass Spectrometry Ontology",
        URI="https://raw.githubusercontent.com/HUPO-PSI/psi-ms-CV/master/psi-ms.obo",
    )
    etree.SubElement(
        cv_list,
        "cv",
        id="UO",
        fullName="Unit Ontology",
        URI="https://raw.githubusercontent.com/bio-ontology-research-group/unit-ontology/master/unit.obo",
    )

    description = etree.Element("fileDescription")
    add_params(etree.SubElement(description, "fileContent"), meta["file_description"]["contents"])
    source_files = meta["file_description"]["source_files"]
    if source_files:
        source_list = etree.SubElement(description, "sourceFileList", count=str(len(source_files)))
        for source_file in source_files:
            source_list.append(_source_file_element(source_file))

    elements = [cv_list, description]
    if meta["param_groups"]:
        groups = etree.Element("referenceableParamGroupList", count=str(len(meta["param_groups"])))
        for group in meta["param_groups"].values():
            groups.append(_param_group_element(group))
        elements.append(groups)

    software_list = etree.Element("softwareList", count="1")
    software = etree.SubElement(software_list, "software", id=_SOFTWARE_ID, version=__version__)
    add_cv_param(software, make_cv_param("MS:1000799", "custom unreleased software tool", _SOFTWARE_ID))

    instruments = etree.Element("instrumentConfigurationList", count="1")
    instrument = etree.SubElement(instruments, "instrumentConfiguration", id=_INSTRUMENT_ID)
    add_cv_param(instrument, make_cv_param("MS:1000031", "instrument model"))

    processing_list = etree.Element("dataProcessingList", count="1")
    processing = etree.SubElement(processing_list, "dataProcessing", id=_PROCESSING_ID)
    method = etree.SubElement(processing, "processingMethod", order="0", softwareRef=_SOFTWARE_ID)
    add_cv_param(method, make_cv_param("MS:1000544", "Conversion to mzML"))

    elements.extend([software_list, instruments, processing_list])
    return elements


def _serialize(element: etree._Element, level: int) -> bytes:
    """Serialize element with children indented for nesting depth level."""
    etree.indent(element, space="  ", level=level)
    return etree.tostring(element) + b"\n"


def _warn_abandoned(handle: BinaryIO, partial: Path) -> None:
    if not handle.closed:
        handle.close()
    _logger.warning(
        "writer abandoned; partial file is unusable: %s",
        partial,
        extra={"source": str(partial)},
    )


class MzMLWriter:
    """Incremental writer for mzML and indexedmzML documents.

    Descriptor precedence for each array: the per-call descriptors
    override, then the writer's default_descriptors for the role, then
    the array's own descriptor. The text encoding is always base64.

    Args:
        path: Final output path.
        registry: Codec registry. Defaults to default_registry().
        default_descriptors: Codec descriptor per array role.
        index_mode: Where to persist the index. Defaults to
            MSDATA_IO_INDEX_MODE.
        spectrum_count: Declared spectrum count; checked at close.
        chromatogram_count: Declared chromatogram count; checked at close.
        metadata: Document metadata for the preamble.
        run_id: Run identifier. Defaults to the metadata run id or "run".

    Raises:
        WriterError: If the partial file cannot be created.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        registry: CodecRegistry | None = None,
        default_descriptors: dict[str, CodecDescriptor] | None = None,
        index_mode: IndexMode | None = None,
        spectrum_count: int | None = None,
        chromatogram_count: int | None = None,
        metadata: DocumentMeta | None = None,
        run_id: str | None = None,
    ) -> None:
        self._path = Path(path)
        self._partial = self._path.with_name(self._path.name + PARTIAL_SUFFIX)
        self._registry = registry if registry is not None else default_registry()
        self._defaults: dict[str, CodecDescriptor] = dict(default_descriptors) if default_descriptors else {}
        self._index_mode: IndexMode = index_mode if index_mode is not None else load_settings()["index_mode"]
        self._declared: dict[RecordKind, int | None] = {
            "spectrum": spectrum_count,
            "chromatogram": chromatogram_count,
        }
        self._meta = metadata if metadata is not None else empty_document_meta()
        self._run_id = run_id or self._meta["run_id"] or "run"
        self._entries: dict[RecordKind, list[IndexEntry]] = {"spectrum": [], "chromatogram": []}
        self._ids: dict[RecordKind, set[str]] = {"spectrum": set(), "chromatogram": set()}
        self._count_positions: dict[RecordKind, int] = {}
        self._open_list: RecordKind | None = None
        self._closed_lists: set[RecordKind] = set()
        self._finished = False
        self._index: OffsetIndex | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._handle: BinaryIO = self._partial.open("w+b")
        except OSError as e:
            raise WriterError(str(self._path), f"cannot create {self._partial.name}: {e}") from e
        self._finalizer = weakref.finalize(self, _warn_abandoned, self._handle, self._partial)
        self._write(self._preamble())

    @property
    def path(self) -> Path:
        return self._path

    @property
    def index(self) -> OffsetIndex:
        """Index of the written document.

        Raises:
            WriterError: If the writer has not been closed successfully.
        """
        if self._index is None:
            raise WriterError(str(self._path), "index is available after close()")
        return self._index

    @property
    def _wrapped(self) -> bool:
        return self._index_mode in ("embedded", "both")

    def _write(self, data: bytes) -> None:
        try:
            self._handle.write(data)
        except OSError as e:
            raise WriterError(str(self._path), f"write failed: {e}") from e

    def _tell(self) -> int:
        return self._handle.tell()

    def _preamble(self) -> bytes:
        parts = [b'<?xml version="1.0" encoding="utf-8"?>\n']
        if self._wrapped:
            parts.append(
                f'<indexedmzML xmlns="{MZML_NS}" xmlns:xsi="{XSI_NS}" '
                f'xsi:schemaLocation="{_INDEXED_SCHEMA_LOCATION}">\n'.encode()
            )
            parts.append(f'  <mzML xmlns="{MZML_NS}" version="1.1.0">\n'.encode())
        else:
            parts.append(
                f'<mzML xmlns="{MZML_NS}" xmlns:xsi="{XSI_NS}" '
                f'xsi:schemaLocation="{_SCHEMA_LOCATION}" version="1.1.0">\n'.encode()
            )
        for element in _preamble_elements(self._meta):
            parts.append(b"    " + _serialize(element, 2))
        parts.append(
            f"    <run id={quoteattr(self._run_id)} defaultInstrumentConfigurationRef="
            f'"{_INSTRUMENT_ID}">\n'.encode()
        )
        return b"".join(parts)

    def _start_list(self, kind: RecordKind) -> None:
        self._write(f'      <{kind}List count="'.encode())
        self._count_positions[kind] = self._tell()
        declared = self._declared[kind]
        count = str(declared) if declared is not None else "0" * _COUNT_WIDTH
        self._write(f'{count}" defaultDataProcessingRef="{_PROCESSING_ID}">\n'.encode())
        self._open_list = kind

    def _end_list(self) -> None:
        kind = self._open_list
        if kind is None:
            return
        self._write(f"      </{kind}List>\n".encode())
        self._closed_lists.add(kind)
        self._open_list = None

    def _check_writable(self) -> None:
        if self._finished:
            raise WriterError(str(self._path), "writer is closed")

    def _descriptor_for(self, array: NumericArray, overrides: dict[str, CodecDescriptor]) -> CodecDescriptor:
        chosen = overrides.get(array["role"]) or self._defaults.get(array["role"]) or array["descriptor"]
        return make_descriptor(
            compression=chosen["compression"],
            dtype=chosen["dtype"],
            byte_order=chosen["byte_order"],
            encoding="base64",
        )

    def _add_binary_array(
        self,
        parent: etree._Element,
        array: NumericArray,
        descriptor: CodecDescriptor,
        kind: RecordKind,
    ) -> None:
        encoded = encode_array(array["values"], descriptor, self._registry)
        el = etree.SubElement(parent, "binaryDataArray")
        if array["series"] is not None:
            el.set("arrayLength", str(encoded["array_length"]))
        el.set("encodedLength", str(encoded["encoded_length"]))
        add_array_params(el, array, descriptor, self._registry, encoded["checksum"])
        etree.SubElement(el, "binary").text = encoded["payload"].decode("ascii")

    def _record_element(
        self,
        record: Record,
        kind: RecordKind,
        position: int,
        overrides: dict[str, CodecDescriptor],
    ) -> etree._Element:
        el = etree.Element(kind, index=str(position), id=record["id"])
        el.set("defaultArrayLength", str(record["default_array_length"]))
        add_params(el, record["params"], record["user_params"])
        if kind == "spectrum":
            _add_scan_list(el, record["scans"])
            if record["precursors"]:
                precursors = etree.SubElement(el, "precursorList", count=str(len(record["precursors"])))
                for precursor in record["precursors"]:
                    _add_precursor(precursors, precursor)
            if record["products"]:
                products = etree.SubElement(el, "productList", count=str(len(record["products"])))
                for product in record["products"]:
                    _add_product(products, product)
        else:
            if len(record["precursors"]) > 1 or len(record["products"]) > 1:
                raise WriterError(str(self._path), f"chromatogram {record['id']} has more than one precursor or product")
            for precursor in record["precursors"]:
                _add_precursor(el, precursor)
            for product in record["products"]:
                _add_product(el, product)
        arrays = etree.SubElement(el, "binaryDataArrayList", count=str(len(record["arrays"])))
        for array in record["arrays"].values():
            self._add_binary_array(arrays, array, self._descriptor_for(array, overrides), kind)
        return el

    def _write_record(
        self,
        record: Record,
        kind: RecordKind,
        descriptors: dict[str, CodecDescriptor] | None,
    ) -> None:
        self._check_writable()
        if record["kind"] != kind:
            raise WriterError(str(self._path), f"{record['id']} is a {record['kind']}, not a {kind}")
        if kind == "spectrum" and "chromatogram" in (self._open_list, *self._closed_lists):
            raise WriterError(str(self._path), "spectra must precede chromatograms")
        if record["id"] in self._ids[kind]:
            raise WriterError(str(self._path), f"duplicate {kind} id {record['id']!r}")
        try:
            element = self._record_element(record, kind, len(self._entries[kind]), descriptors or {})
        except CodecError as e:
            raise WriterError(str(self._path), f"cannot encode {record['id']}: {e}") from e
        if self._open_list != kind:
            self._end_list()
            self._start_list(kind)
        data = etree.tostring(element)
        self._write(b"        ")
        offset = self._tell()
        self._write(data + b"\n")
        self._entries[kind].append(make_entry(record["id"], offset, len(data)))
        self._ids[kind].add(record["id"])

    def write_spectrum(
        self,
        record: Record,
        descriptors: dict[str, CodecDescriptor] | None = None,
    ) -> None:
        """Append one spectrum.

        Args:
            record: Spectrum record.
            descriptors: Per-role codec overrides for this record.

        Raises:
            WriterError: If a chromatogram was already written, the id
                repeats, or an array cannot be encoded.
        """
        self._write_record(record, "spectrum", descriptors)

    def write_chromatogram(
        self,
        record: Record,
        descriptors: dict[str, CodecDescriptor] | None = None,
    ) -> None:
        self._write_record(record, "chromatogram", descriptors)

    def write(self, record: Record, descriptors: dict[str, CodecDescriptor] | None = None) -> None:
        self._write_record(record, record["kind"], descriptors)

    def write_all(self, records: Iterable[Record]) -> None:
        for record in records:
            self.write(record)

    def _patch_counts(self) -> None:
        for kind in _KINDS:
            actual = len(self._entries[kind])
            declared = self._declared[kind]
            if declared is not None:
                if declared != actual:
                    raise WriterError(str(self._path), f"declared {declared} {kind} records, wrote {actual}")
                continue
            position = self._count_positions.get(kind)
            if position is None:
                continue
            self._handle.seek(position)
            self._write(str(actual).zfill(_COUNT_WIDTH).encode("ascii"))
        self._handle.seek(0, 2)

    def _write_index_tail(self) -> None:
        index_list = etree.Element("indexList")
        for kind in _KINDS:
            if not self._entries[kind]:
                continue
            index_el = etree.SubElement(index_list, "index", name=kind)
            for entry in self._entries[kind]:
                etree.SubElement(index_el, "offset", idRef=entry["id"]).text = str(entry["offset"])
        index_list.set("count", str(len(index_list)))
        self._write(b"  ")
        list_offset = self._tell()
        self._write(_serialize(index_list, 1))
        self._write(f"  <indexListOffset>{list_offset}</indexListOffset>\n  <fileChecksum>".encode())
        self._write(self._digest().encode("ascii"))
        self._write(b"</fileChecksum>\n</indexedmzML>\n")

    def _digest(self) -> str:
        """SHA-1 of everything written so far."""
        self._handle.flush()
        end = self._tell()
        self._handle.seek(0)
        digest = hashlib.sha1()
        remaining = end
        while remaining > 0:
            chunk = self._handle.read(min(1 << 20, remaining))
            if not chunk:
                break
            digest.update(chunk)
            remaining -= len(chunk)
        self._handle.seek(end)
        return digest.hexdigest()

    def _index_strategy(self) -> IndexStrategy:
        return "embedded" if self._wrapped else "sidecar"

    def _finalize(self) -> None:
        if not self._entries["spectrum"] and not self._entries["chromatogram"]:
            self._start_list("spectrum")
        self._end_list()
        self._write(b"    </run>\n")
        self._write(b"  </mzML>\n" if self._wrapped else b"</mzML>\n")
        self._patch_counts()
        self._index = OffsetIndex(
            self._entries["spectrum"],
            self._entries["chromatogram"],
            self._index_strategy(),
            str(self._path),
        )
        if self._wrapped:
            self._write_index_tail()
        try:
            self._handle.close()
        except OSError as e:
            raise WriterError(str(self._path), f"close failed: {e}") from e
        self._publish()

    def _publish(self) -> None:
        """Move the finished partial file into place and write the side-car."""
        try:
            self._partial.replace(self._path)
            if self._index_mode in ("sidecar", "both") and self._index is not None:
                with self._path.open("rb") as stream:
                    checksum = document_checksum(stream)
                write_sidecar(self._index, sidecar_path_for(self._path), checksum)
        except OSError as e:
            raise WriterError(str(self._path), f"cannot publish output: {e}") from e
        _logger.info(
            "wrote %d spectra, %d chromatograms",
            len(self._entries["spectrum"]),
            len(self._entries["chromatogram"]),
            extra={"source": str(self._path), "strategy": self._index_mode},
        )

    def close(self) -> None:
        """Finalize the document and move it into place.

        Raises:
            WriterError: If finalization fails. The partial file is left
                behind and never renamed.
        """
        if self._finished:
            return
        self._finished = True
        try:
            self._finalize()
        except WriterError:
            self._finalizer()
            raise
        self._finalizer.detach()

    def abort(self) -> None:
        """Abandon the output, leaving the partial file unrenamed."""
        if self._finished:
            return
        self._finished = True
        self._finalizer()

    def __enter__(self) -> MzMLWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abort()
            return
        self.close()


__all__ = [
    "MZML_NS",
    "PARTIAL_SUFFIX",
    "MzMLWriter",
    "add_array_params",
    "add_cv_param",
    "add_params",
    "add_user_param",
    "role_param",
]
