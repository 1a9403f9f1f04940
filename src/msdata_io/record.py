"""Record construction, validation and typed accessors.

make_record is the only way the parser and the readers build records, so
every record handed to a caller satisfies the co-indexing invariant:
arrays without a series name all have the record's default array length.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike

from msdata_io._exceptions import RecordInvariantError
from msdata_io.config import load_settings
from msdata_io.types.codec import make_descriptor
from msdata_io.types.common import CompressionName, DTypeName, ParamValue, RecordKind
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

MS_LEVEL = "MS:1000511"
SCAN_START_TIME = "MS:1000016"
SELECTED_ION_MZ = "MS:1000744"
CHARGE_STATE = "MS:1000041"
CENTROID_SPECTRUM = "MS:1000127"
PROFILE_SPECTRUM = "MS:1000128"
UNIT_MINUTE = "UO:0000031"
UNIT_SECOND = "UO:0000010"


def make_cv_param(
    accession: str,
    name: str,
    value: ParamValue = None,
    unit_accession: str | None = None,
) -> CVParam:
    """Create a CVParam TypedDict."""
    return CVParam(accession=accession, name=name, value=value, unit_accession=unit_accession)


def param_map(*params: CVParam) -> ParamMap:
    """Key parameters by accession; later duplicates win."""
    return {p["accession"]: p for p in params}


_DTYPE_NAMES: dict[str, DTypeName] = {
    "float32": "float32",
    "float64": "float64",
    "int32": "int32",
    "int64": "int64",
}


def make_array(
    role: str,
    values: ArrayLike,
    *,
    compression: CompressionName | None = None,
    series: str | None = None,
    params: ParamMap | None = None,
) -> NumericArray:
    """Create a NumericArray from caller values.

    The dtype follows the values (anything that is not float32, int32 or
    int64 is stored as float64). Compression defaults to
    MSDATA_IO_DEFAULT_COMPRESSION.

    Args:
        role: Array type name.
        values: One-dimensional numeric values.
        compression: Transport compression for writers.
        series: Series name for arrays not co-indexed with the record.
        params: Extra array parameters.

    Returns:
        NumericArray TypedDict with no checksum.
    """
    arr = np.asarray(values).reshape(-1)
    dtype = _DTYPE_NAMES.get(arr.dtype.name, "float64")
    arr = arr.astype(dtype)
    if compression is None:
        compression = load_settings()["default_compression"]
    return NumericArray(
        role=role,
        values=arr,
        descriptor=make_descriptor(compression=compression, dtype=dtype),
        checksum=None,
        verified=None,
        series=series,
        params=dict(params) if params is not None else {},
    )


def _co_indexed_length(identifier: str, arrays: dict[str, NumericArray]) -> int | None:
    length: int | None = None
    first_role = ""
    for role, array in arrays.items():
        if array["series"] is not None:
            continue
        n = int(array["values"].shape[0])
        if length is None:
            length = n
            first_role = role
        elif n != length:
            raise RecordInvariantError(
                identifier,
                f"co-indexed arrays differ in length: {first_role}={length}, {role}={n}",
            )
    return length


def make_record(
    kind: RecordKind,
    identifier: str,
    index: int,
    *,
    arrays: dict[str, NumericArray],
    default_array_length: int | None = None,
    params: ParamMap | None = None,
    user_params: list[UserParam] | None = None,
    scans: list[ScanEvent] | None = None,
    precursors: list[Precursor] | None = None,
    products: list[Product] | None = None,
    diagnostics: list[str] | None = None,
) -> Record:
    """Create a Record, validating its arrays.

    Args:
        kind: Record namespace.
        identifier: Native identifier.
        index: Ordinal position within its list.
        arrays: Numeric arrays keyed by role.
        default_array_length: Declared co-indexed length. Inferred from the
            co-indexed arrays when None.
        params: Record-level CV parameters.
        user_params: Record-level user parameters.
        scans: Scan descriptors.
        precursors: Precursor selections.
        products: Product selections.
        diagnostics: Recoverable conditions found while decoding.

    Returns:
        Record TypedDict.

    Raises:
        RecordInvariantError: If co-indexed arrays differ in length or
            differ from default_array_length, or index is negative.
    """
    if index < 0:
        raise RecordInvariantError(identifier, f"negative index {index}")
    for role, array in arrays.items():
        if array["role"] != role:
            raise RecordInvariantError(identifier, f"array keyed {role} has role {array['role']}")
    length = _co_indexed_length(identifier, arrays)
    if default_array_length is None:
        default_array_length = length if length is not None else 0
    elif length is not None and length != default_array_length:
        raise RecordInvariantError(
            identifier,
            f"co-indexed arrays have length {length}, declared defaultArrayLength {default_array_length}",
        )
    return Record(
        kind=kind,
        id=identifier,
        index=index,
        default_array_length=default_array_length,
        params=params if params is not None else {},
        user_params=user_params if user_params is not None else [],
        scans=scans if scans is not None else [],
        precursors=precursors if precursors is not None else [],
        products=products if products is not None else [],
        arrays=arrays,
        diagnostics=diagnostics if diagnostics is not None else [],
    )


def _arrays_equal(a: NumericArray, b: NumericArray) -> bool:
    if a["values"].dtype != b["values"].dtype:
        return False
    if not np.array_equal(a["values"], b["values"]):
        return False
    return (
        a["role"] == b["role"]
        and a["descriptor"] == b["descriptor"]
        and a["checksum"] == b["checksum"]
        and a["verified"] == b["verified"]
        and a["series"] == b["series"]
        and a["params"] == b["params"]
    )


def record_equal(a: Record, b: Record) -> bool:
    """Compare two records field for field, arrays by value."""
    if a["arrays"].keys() != b["arrays"].keys():
        return False
    for role in a["arrays"]:
        if not _arrays_equal(a["arrays"][role], b["arrays"][role]):
            return False
    return (
        a["kind"] == b["kind"]
        and a["id"] == b["id"]
        and a["index"] == b["index"]
        and a["default_array_length"] == b["default_array_length"]
        and a["params"] == b["params"]
        and a["user_params"] == b["user_params"]
        and a["scans"] == b["scans"]
        and a["precursors"] == b["precursors"]
        and a["products"] == b["products"]
        and a["diagnostics"] == b["diagnostics"]
    )


def get_param(params: ParamMap, accession: str) -> CVParam | None:
    return params.get(accession)


def get_array(record: Record, role: str) -> NumericArray | None:
    return record["arrays"].get(role)


def _as_float(value: ParamValue) -> float | None:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def ms_level(record: Record) -> int | None:
    param = record["params"].get(MS_LEVEL)
    if param is None:
        return None
    value = _as_float(param["value"])
    return int(value) if value is not None else None


def scan_start_time(record: Record) -> float | None:
    """Return the first scan's start time in seconds, if recorded."""
    for scan in record["scans"]:
        param = scan["params"].get(SCAN_START_TIME)
        if param is None:
            continue
        value = _as_float(param["value"])
        if value is None:
            return None
        if param["unit_accession"] == UNIT_MINUTE:
            return value * 60.0
        return value
    return None


def precursor_mz(record: Record) -> float | None:
    """Return the m/z of the first selected ion of the first precursor."""
    for precursor in record["precursors"]:
        for ion in precursor["selected_ions"]:
            param = ion.get(SELECTED_ION_MZ)
            if param is not None:
                return _as_float(param["value"])
    return None


__all__ = [
    "CENTROID_SPECTRUM",
    "CHARGE_STATE",
    "MS_LEVEL",
    "PROFILE_SPECTRUM",
    "SCAN_START_TIME",
    "SELECTED_ION_MZ",
    "UNIT_MINUTE",
    "UNIT_SECOND",
    "get_array",
    "get_param",
    "make_array",
    "make_cv_param",
    "make_record",
    "ms_level",
    "param_map",
    "precursor_mz",
    "record_equal",
    "scan_start_time",
]
