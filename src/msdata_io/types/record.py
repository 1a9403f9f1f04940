"""TypedDict definitions for spectrum and chromatogram records.

A record is the unit the parser yields and the writer consumes. Records
own their numeric arrays; cross-references to other records (precursor
spectra) are identifiers, never nested records.
"""

from __future__ import annotations

from typing import TypedDict

import numpy as np
from numpy.typing import NDArray

from msdata_io.types.codec import CodecDescriptor
from msdata_io.types.common import ParamValue, RecordKind

NumericValues = NDArray[np.float64] | NDArray[np.float32] | NDArray[np.int32] | NDArray[np.int64]


class CVParam(TypedDict):
    """Controlled-vocabulary parameter assertion.

    Attributes:
        accession: CV accession code (e.g. "MS:1000511").
        name: CV term name.
        value: Typed scalar value or None when the term is a flag.
        unit_accession: Unit accession (e.g. "UO:0000031") or None.
    """

    accession: str
    name: str
    value: ParamValue
    unit_accession: str | None


class UserParam(TypedDict):
    """Free-form parameter outside the controlled vocabulary.

    Attributes:
        name: Parameter name.
        value: Parameter value as text.
        type: Declared XML schema type (e.g. "xsd:float") or None.
    """

    name: str
    value: str
    type: str | None


ParamMap = dict[str, CVParam]


class NumericArray(TypedDict):
    """One decoded numeric array of a record.

    Attributes:
        role: Array type name (e.g. "m/z array", "intensity array").
        values: Decoded values in the declared dtype.
        descriptor: Transport representation the array was read with, or
            should be written with.
        checksum: Declared "sha1:<hex>" checksum of the decoded bytes.
        verified: True/False after checksum verification, None when no
            checksum was declared.
        series: None when co-indexed with the record's primary series,
            otherwise the name of an independently sized series.
        params: Extra parameters of the array (units, non-standard names).
    """

    role: str
    values: NumericValues
    descriptor: CodecDescriptor
    checksum: str | None
    verified: bool | None
    series: str | None
    params: ParamMap


class ScanWindow(TypedDict):
    """Scan window bounds.

    Attributes:
        params: Window parameters (lower/upper limits).
    """

    params: ParamMap


class ScanEvent(TypedDict):
    """One scan descriptor of a spectrum.

    Attributes:
        params: Scan parameters (scan start time, filter string, ...).
        instrument_configuration_ref: Referenced instrument configuration.
        scan_windows: Scan windows of the event.
    """

    params: ParamMap
    instrument_configuration_ref: str | None
    scan_windows: list[ScanWindow]


class Precursor(TypedDict):
    """Precursor selection of an MSn spectrum or SRM chromatogram.

    Attributes:
        spectrum_ref: Identifier of the precursor spectrum, if recorded.
        isolation_window: Isolation window parameters.
        selected_ions: Parameters of each selected ion.
        activation: Activation parameters.
    """

    spectrum_ref: str | None
    isolation_window: ParamMap
    selected_ions: list[ParamMap]
    activation: ParamMap


class Product(TypedDict):
    """Product ion selection of an SRM chromatogram.

    Attributes:
        isolation_window: Isolation window parameters.
    """

    isolation_window: ParamMap


class Record(TypedDict):
    """A spectrum or chromatogram.

    Attributes:
        kind: Record namespace.
        id: Document-unique native identifier.
        index: Ordinal position within its list.
        default_array_length: Declared length of co-indexed arrays.
        params: Record-level CV parameters keyed by accession.
        user_params: Record-level user parameters.
        scans: Scan descriptors (spectra only).
        precursors: Precursor selections.
        products: Product selections (chromatograms only).
        arrays: Numeric arrays keyed by role.
        diagnostics: Recoverable conditions found while decoding.
    """

    kind: RecordKind
    id: str
    index: int
    default_array_length: int
    params: ParamMap
    user_params: list[UserParam]
    scans: list[ScanEvent]
    precursors: list[Precursor]
    products: list[Product]
    arrays: dict[str, NumericArray]
    diagnostics: list[str]


class RecordDiagnostic(TypedDict):
    """Report of a record that was skipped or degraded while parsing.

    Attributes:
        record_id: Identifier of the record ("" if it could not be read).
        kind: Record namespace.
        offset: Byte offset of the record start, or None for formats
            without byte addressing (MGF).
        error_type: Exception class name.
        message: Human-readable description.
        skipped: True if the record was dropped, False if it was returned
            degraded (e.g. unverified checksum).
    """

    record_id: str
    kind: RecordKind
    offset: int | None
    error_type: str
    message: str
    skipped: bool


__all__ = [
    "CVParam",
    "NumericArray",
    "NumericValues",
    "ParamMap",
    "Precursor",
    "Product",
    "Record",
    "RecordDiagnostic",
    "ScanEvent",
    "ScanWindow",
    "UserParam",
]
