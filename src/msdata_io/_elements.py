"""Element grammar for spectrum and chromatogram fragments.

The structural parser cuts one record element out of the byte stream and
hands it here. Recognition is a closed dispatch over ElementKind;
elements outside the grammar classify as UNKNOWN and are skipped.

Also parses the document preamble (everything before the first record
list) into DocumentMeta.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Protocol

from lxml import etree

from msdata_io._exceptions import (
    MalformedEncodingError,
    RecordInvariantError,
    RecordSyntaxError,
    UnsupportedCodecError,
)
from msdata_io.binary import decode_array
from msdata_io.codecs.registry import COMPRESSION_ACCESSIONS, DTYPE_ACCESSIONS, CodecRegistry
from msdata_io.logging import get_logger
from msdata_io.record import make_record
from msdata_io.types.codec import make_descriptor
from msdata_io.types.common import ByteOrder, CompressionName, DTypeName, EncodingName, ParamValue, RecordKind
from msdata_io.types.document import DocumentMeta, ParamGroup, SourceFile, empty_document_meta
from msdata_io.types.record import (
    CVParam,
    NumericArray,
    ParamMap,
    Precursor,
    Product,
    Record,
    ScanEvent,
    ScanWindow,
    UserParam,
)

_logger = get_logger(__name__)

# Array type terms (children of MS:1000513 "binary data array").
ARRAY_TYPES: dict[str, str] = {
    "MS:1000514": "m/z array",
    "MS:1000515": "intensity array",
    "MS:1000516": "charge array",
    "MS:1000517": "signal to noise array",
    "MS:1000595": "time array",
    "MS:1000617": "wavelength array",
    "MS:1000786": "non-standard data array",
    "MS:1000820": "flow rate array",
    "MS:1000821": "pressure array",
    "MS:1000822": "temperature array",
    "MS:1002530": "baseline array",
    "MS:1002893": "ion mobility array",
}
NON_STANDARD_ARRAY = "MS:1000786"

# mzMLb references into HDF5 datasets.
EXTERNAL_DATASET = "MS:1002841"
EXTERNAL_OFFSET = "MS:1002842"
EXTERNAL_LENGTH = "MS:1002843"

CHECKSUM_USER_PARAM = "checksum"
BYTE_ORDER_USER_PARAM = "byte order"

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

_FRAGMENT_PARSER = etree.XMLParser(huge_tree=True, remove_comments=True, resolve_entities=False)


class ElementKind(Enum):
    """Elements recognised inside a record."""

    CV_PARAM = "cvParam"
    USER_PARAM = "userParam"
    PARAM_GROUP_REF = "referenceableParamGroupRef"
    SCAN_LIST = "scanList"
    SCAN = "scan"
    SCAN_WINDOW_LIST = "scanWindowList"
    SCAN_WINDOW = "scanWindow"
    PRECURSOR_LIST = "precursorList"
    PRECURSOR = "precursor"
    ISOLATION_WINDOW = "isolationWindow"
    SELECTED_ION_LIST = "selectedIonList"
    SELECTED_ION = "selectedIon"
    ACTIVATION = "activation"
    PRODUCT_LIST = "productList"
    PRODUCT = "product"
    BINARY_DATA_ARRAY_LIST = "binaryDataArrayList"
    BINARY_DATA_ARRAY = "binaryDataArray"
    BINARY = "binary"
    UNKNOWN = ""


_KINDS_BY_TAG: dict[str, ElementKind] = {k.value: k for k in ElementKind if k is not ElementKind.UNKNOWN}


def classify(element: etree._Element) -> ElementKind:
    """Map an element to its ElementKind by local name."""
    tag = element.tag
    if not isinstance(tag, str):
        return ElementKind.UNKNOWN
    return _KINDS_BY_TAG.get(etree.QName(tag).localname, ElementKind.UNKNOWN)


def _local_name(element: etree._Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


class BinaryResolver(Protocol):
    """Fetches array bytes stored outside the XML (mzMLb datasets)."""

    def __call__(self, dataset: str, offset: int, length: int) -> bytes: ...


class FragmentContext:
    """What fragment parsing needs beyond the fragment bytes."""

    def __init__(
        self,
        registry: CodecRegistry,
        param_groups: dict[str, ParamGroup] | None = None,
        binary_resolver: BinaryResolver | None = None,
        strict: bool = False,
    ) -> None:
        self.registry = registry
        self.param_groups: dict[str, ParamGroup] = param_groups if param_groups is not None else {}
        self.binary_resolver = binary_resolver
        self.strict = strict


def parse_param_value(raw: str | None) -> ParamValue:
    """Type a cvParam value attribute: int, float, str, or None if empty."""
    if raw is None or raw == "":
        return None
    stripped = raw.strip()
    if _INT_RE.match(stripped):
        return int(stripped)
    if _FLOAT_RE.match(stripped):
        return float(stripped)
    return raw


def _decode_cv_param(element: etree._Element) -> CVParam:
    return CVParam(
        accession=element.get("accession", ""),
        name=element.get("name", ""),
        value=parse_param_value(element.get("value")),
        unit_accession=element.get("unitAccession"),
    )


def _decode_user_param(element: etree._Element) -> UserParam:
    return UserParam(
        name=element.get("name", ""),
        value=element.get("value", ""),
        type=element.get("type"),
    )


def _decode_params(
    element: etree._Element,
    groups: dict[str, ParamGroup],
) -> tuple[ParamMap, list[UserParam]]:
    """Collect cvParams, userParams and expanded group refs of an element."""
    params: ParamMap = {}
    user_params: list[UserParam] = []
    for child in element:
        kind = classify(child)
        if kind is ElementKind.CV_PARAM:
            param = _decode_cv_param(child)
            params[param["accession"]] = param
        elif kind is ElementKind.USER_PARAM:
            user_params.append(_decode_user_param(child))
        elif kind is ElementKind.PARAM_GROUP_REF:
            group = groups.get(child.get("ref", ""))
            if group is None:
                _logger.debug("unresolved referenceableParamGroupRef %s", child.get("ref"))
                continue
            params.update(group["params"])
            user_params.extend(group["user_params"])
    return params, user_params


def _decode_scan_window(element: etree._Element, ctx: FragmentContext) -> ScanWindow:
    params, _ = _decode_params(element, ctx.param_groups)
    return ScanWindow(params=params)


def _decode_scan(element: etree._Element, ctx: FragmentContext) -> ScanEvent:
    params, _ = _decode_params(element, ctx.param_groups)
    windows: list[ScanWindow] = []
    for child in element:
        if classify(child) is ElementKind.SCAN_WINDOW_LIST:
            windows.extend(
                _decode_scan_window(w, ctx) for w in child if classify(w) is ElementKind.SCAN_WINDOW
            )
    return ScanEvent(
        params=params,
        instrument_configuration_ref=element.get("instrumentConfigurationRef"),
        scan_windows=windows,
    )


def _decode_precursor(element: etree._Element, ctx: FragmentContext) -> Precursor:
    isolation: ParamMap = {}
    ions: list[ParamMap] = []
    activation: ParamMap = {}
    for child in element:
        kind = classify(child)
        if kind is ElementKind.ISOLATION_WINDOW:
            isolation, _ = _decode_params(child, ctx.param_groups)
        elif kind is ElementKind.SELECTED_ION_LIST:
            for ion in child:
                if classify(ion) is ElementKind.SELECTED_ION:
                    ion_params, _ = _decode_params(ion, ctx.param_groups)
                    ions.append(ion_params)
        elif kind is ElementKind.ACTIVATION:
            activation, _ = _decode_params(child, ctx.param_groups)
    return Precursor(
        spectrum_ref=element.get("spectrumRef"),
        isolation_window=isolation,
        selected_ions=ions,
        activation=activation,
    )


def _decode_product(element: etree._Element, ctx: FragmentContext) -> Product:
    isolation: ParamMap = {}
    for child in element:
        if classify(child) is ElementKind.ISOLATION_WINDOW:
            isolation, _ = _decode_params(child, ctx.param_groups)
    return Product(isolation_window=isolation)


def _binary_text(element: etree._Element) -> bytes:
    for child in element:
        if classify(child) is ElementKind.BINARY:
            text = child.text
            if not text:
                return b""
            try:
                return text.encode("ascii")
            except UnicodeEncodeError as e:
                raise MalformedEncodingError("base64", f"non-ASCII character in binary payload at {e.start}") from e
    return b""


def _int_param(params: ParamMap, accession: str, record_id: str) -> int:
    param = params.get(accession)
    if param is None:
        raise RecordSyntaxError(record_id, f"external array reference lacks {accession}")
    value = param["value"]
    if isinstance(value, int):
        return value
    raise RecordSyntaxError(record_id, f"{accession} value is not an integer: {value!r}")


def _array_length(element: etree._Element, record_id: str) -> int | None:
    raw = element.get("arrayLength")
    if raw is None:
        return None
    if not _INT_RE.match(raw.strip()) or int(raw) < 0:
        raise RecordSyntaxError(record_id, f"arrayLength is not a non-negative integer: {raw!r}")
    return int(raw)


_NUMPRESS_WITH_ZLIB: dict[str, CompressionName] = {
    "numpress-linear": "numpress-linear+zlib",
    "numpress-pic": "numpress-pic+zlib",
    "numpress-slof": "numpress-slof+zlib",
}


def _combine_compressions(names: list[CompressionName]) -> CompressionName:
    """Fold the compression terms of one array into a single scheme.

    Older documents declare numpress followed by zlib as two separate
    terms; that pair maps to the combined "+zlib" scheme. No term means
    "none".

    Raises:
        UnsupportedCodecError: For any other combination of terms.
    """
    distinct = list(dict.fromkeys(names))
    if not distinct:
        return "none"
    if len(distinct) == 1:
        return distinct[0]
    if len(distinct) == 2 and "zlib" in distinct:
        other = distinct[0] if distinct[1] == "zlib" else distinct[1]
        combined = _NUMPRESS_WITH_ZLIB.get(other)
        if combined is not None:
            return combined
    raise UnsupportedCodecError("compression", " + ".join(distinct))


def _decode_binary_array(
    element: etree._Element,
    record_id: str,
    ctx: FragmentContext,
) -> NumericArray:
    params, user_params = _decode_params(element, ctx.param_groups)

    dtype: DTypeName | None = None
    compressions: list[CompressionName] = []
    role: str | None = None
    extra: ParamMap = {}
    for accession, param in params.items():
        if accession in DTYPE_ACCESSIONS:
            dtype = DTYPE_ACCESSIONS[accession]
        elif accession in COMPRESSION_ACCESSIONS:
            compressions.append(COMPRESSION_ACCESSIONS[accession])
        else:
            if accession in ARRAY_TYPES:
                if accession == NON_STANDARD_ARRAY and isinstance(param["value"], str):
                    role = param["value"]
                else:
                    role = ARRAY_TYPES[accession]
            extra[accession] = param
    if dtype is None:
        raise RecordSyntaxError(record_id, "binaryDataArray declares no data type")
    if role is None:
        raise RecordSyntaxError(record_id, "binaryDataArray declares no array type")
    compression = _combine_compressions(compressions)

    checksum: str | None = None
    byte_order: ByteOrder = "little"
    for user_param in user_params:
        if user_param["name"] == CHECKSUM_USER_PARAM:
            checksum = user_param["value"]
        elif user_param["name"] == BYTE_ORDER_USER_PARAM and user_param["value"] == "big-endian":
            byte_order = "big"

    encoding: EncodingName = "base64"
    if EXTERNAL_DATASET in extra:
        if ctx.binary_resolver is None:
            raise RecordSyntaxError(record_id, f"{role} references an external dataset without a resolver")
        dataset = str(extra.pop(EXTERNAL_DATASET)["value"])
        offset = _int_param(extra, EXTERNAL_OFFSET, record_id)
        length = _int_param(extra, EXTERNAL_LENGTH, record_id)
        extra.pop(EXTERNAL_OFFSET)
        extra.pop(EXTERNAL_LENGTH)
        payload = ctx.binary_resolver(dataset, offset, length)
        encoding = "none"
    else:
        payload = _binary_text(element)

    expected_length = _array_length(element, record_id)
    return decode_array(
        payload,
        make_descriptor(compression=compression, dtype=dtype, byte_order=byte_order, encoding=encoding),
        ctx.registry,
        role=role,
        expected_length=expected_length,
        checksum=checksum,
        series=role if expected_length is not None else None,
        params=extra,
        strict=ctx.strict,
    )


def _parse_fragment(fragment: bytes, record_id: str) -> etree._Element:
    try:
        return etree.fromstring(fragment, _FRAGMENT_PARSER)
    except etree.XMLSyntaxError as e:
        raise RecordSyntaxError(record_id, f"malformed record markup: {e}") from e


def parse_record(fragment: bytes, kind: RecordKind, ctx: FragmentContext) -> Record:
    """Parse one spectrum or chromatogram element into a Record.

    Args:
        fragment: Bytes of the element, start tag through end tag.
        kind: Expected record namespace.
        ctx: Registry, parameter groups and binary resolver.

    Returns:
        Record TypedDict. Arrays whose checksum did not verify carry
        verified=False and a diagnostic line on the record.

    Raises:
        RecordSyntaxError: If the markup or required attributes are invalid.
        RecordInvariantError: If co-indexed arrays disagree in length.
        CodecError: If an array cannot be decoded.
    """
    root = _parse_fragment(fragment, "")
    record_id = root.get("id")
    if record_id is None:
        raise RecordSyntaxError("", f"{kind} element without id")
    if _local_name(root) != kind:
        raise RecordSyntaxError(record_id, f"expected {kind}, found {_local_name(root)}")
    try:
        index = int(root.get("index", ""))
        default_length = int(root.get("defaultArrayLength", ""))
    except ValueError as e:
        raise RecordSyntaxError(record_id, f"invalid index or defaultArrayLength: {e}") from e

    params, user_params = _decode_params(root, ctx.param_groups)
    scans: list[ScanEvent] = []
    precursors: list[Precursor] = []
    products: list[Product] = []
    arrays: dict[str, NumericArray] = {}
    diagnostics: list[str] = []

    for child in root:
        element_kind = classify(child)
        if element_kind in (ElementKind.CV_PARAM, ElementKind.USER_PARAM, ElementKind.PARAM_GROUP_REF):
            continue
        if element_kind is ElementKind.SCAN_LIST:
            list_params, _ = _decode_params(child, ctx.param_groups)
            params.update(list_params)
            scans.extend(_decode_scan(s, ctx) for s in child if classify(s) is ElementKind.SCAN)
        elif element_kind is ElementKind.PRECURSOR_LIST:
            precursors.extend(_decode_precursor(p, ctx) for p in child if classify(p) is ElementKind.PRECURSOR)
        elif element_kind is ElementKind.PRECURSOR:
            precursors.append(_decode_precursor(child, ctx))
        elif element_kind is ElementKind.PRODUCT_LIST:
            products.extend(_decode_product(p, ctx) for p in child if classify(p) is ElementKind.PRODUCT)
        elif element_kind is ElementKind.PRODUCT:
            products.append(_decode_product(child, ctx))
        elif element_kind is ElementKind.BINARY_DATA_ARRAY_LIST:
            for array_element in child:
                if classify(array_element) is not ElementKind.BINARY_DATA_ARRAY:
                    continue
                array = _decode_binary_array(array_element, record_id, ctx)
                if array["role"] in arrays:
                    raise RecordInvariantError(record_id, f"duplicate {array['role']}")
                arrays[array["role"]] = array
                if array["verified"] is False:
                    diagnostics.append(f"checksum mismatch in {array['role']}")
        else:
            _logger.debug(
                "skipping unknown element %s in %s",
                _local_name(child),
                record_id,
                extra={"record_id": record_id, "record_kind": kind},
            )

    return make_record(
        kind,
        record_id,
        index,
        arrays=arrays,
        default_array_length=default_length,
        params=params,
        user_params=user_params,
        scans=scans,
        precursors=precursors,
        products=products,
        diagnostics=diagnostics,
    )


def _decode_source_file(element: etree._Element, groups: dict[str, ParamGroup]) -> SourceFile:
    params, _ = _decode_params(element, groups)
    return SourceFile(
        id=element.get("id", ""),
        name=element.get("name", ""),
        location=element.get("location", ""),
        params=params,
    )


def parse_preamble(data: bytes) -> DocumentMeta:
    """Parse the bytes preceding the first record list.

    The input is an unfinished document; the pull parser is never closed,
    so open elements are not an error.

    Raises:
        etree.XMLSyntaxError: If the preamble markup is malformed.
    """
    meta = empty_document_meta()
    parser = etree.XMLPullParser(events=("start", "end"), huge_tree=True, remove_comments=True)
    parser.feed(data)
    for action, element in parser.read_events():
        name = _local_name(element)
        if action == "start":
            if name == "run":
                meta["run_id"] = element.get("id", "")
            continue
        if name == "referenceableParamGroup":
            params, user_params = _decode_params(element, {})
            group_id = element.get("id", "")
            meta["param_groups"][group_id] = ParamGroup(id=group_id, params=params, user_params=user_params)
        elif name == "fileContent":
            contents, _ = _decode_params(element, meta["param_groups"])
            meta["file_description"]["contents"] = contents
        elif name == "sourceFile":
            meta["file_description"]["source_files"].append(_decode_source_file(element, meta["param_groups"]))
    return meta


__all__ = [
    "ARRAY_TYPES",
    "BYTE_ORDER_USER_PARAM",
    "CHECKSUM_USER_PARAM",
    "EXTERNAL_DATASET",
    "EXTERNAL_LENGTH",
    "EXTERNAL_OFFSET",
    "NON_STANDARD_ARRAY",
    "BinaryResolver",
    "ElementKind",
    "FragmentContext",
    "classify",
    "parse_param_value",
    "parse_preamble",
    "parse_record",
]
