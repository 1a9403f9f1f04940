"""Decoder functions for MGF peak list data via pyteomics.

Converts pyteomics MGF params dicts to record parameters. MGF carries
centroided MS/MS peak lists, so every record is an MS2 spectrum.
"""

from __future__ import annotations

from msdata_io._exceptions import RecordSyntaxError
from msdata_io._protocols.mgf import MGFParamsDict
from msdata_io.record import (
    CHARGE_STATE,
    SCAN_START_TIME,
    SELECTED_ION_MZ,
    UNIT_SECOND,
    make_cv_param,
    param_map,
)
from msdata_io.types.record import Precursor, ScanEvent, UserParam

MGFParamValue = str | float | int | list[int] | tuple[float | None, ...] | None

PEAK_INTENSITY = "MS:1000042"

# Params mapped onto CV terms; everything else becomes a userParam.
_MAPPED_KEYS = frozenset({"title", "pepmass", "charge", "rtinseconds"})


def _decode_mgf_title(params: MGFParamsDict, index: int) -> str:
    """Extract title from MGF params.

    Args:
        params: MGF spectrum params dict.
        index: 0-based position of the spectrum in the file.

    Returns:
        Title, or "index=<n>" when the spectrum has none.
    """
    title = params.get("title")
    if title is None or title == "":
        return f"index={index}"
    if isinstance(title, str):
        return title
    return str(title)


def _decode_pepmass(pepmass: MGFParamValue, record_id: str) -> tuple[float, float | None] | None:
    """Decode pepmass value to (mz, intensity) tuple.

    Args:
        pepmass: Raw pepmass value. pyteomics returns tuples like (mz,) or
            (mz, intensity) where intensity may be None.
        record_id: Spectrum title, for error messages.

    Returns:
        Tuple of (precursor_mz, precursor_intensity), or None if absent.

    Raises:
        RecordSyntaxError: If pepmass is present but unusable.
    """
    if pepmass is None:
        return None

    if isinstance(pepmass, tuple):
        if len(pepmass) == 0 or pepmass[0] is None:
            raise RecordSyntaxError(record_id, "pepmass without m/z")
        mz = float(pepmass[0])
        intensity: float | None = None
        if len(pepmass) > 1 and pepmass[1] is not None:
            intensity = float(pepmass[1])
        return mz, intensity

    if isinstance(pepmass, (int, float)):
        return float(pepmass), None

    if isinstance(pepmass, str):
        fields = pepmass.split()
        try:
            values = [float(f) for f in fields]
        except ValueError as e:
            raise RecordSyntaxError(record_id, f"invalid pepmass {pepmass!r}") from e
        if not values:
            raise RecordSyntaxError(record_id, "empty pepmass")
        return values[0], values[1] if len(values) > 1 else None

    raise RecordSyntaxError(record_id, f"invalid pepmass type: {type(pepmass).__name__}")


def _decode_charge_value(charge_raw: MGFParamValue) -> int | None:
    """Decode charge value from various formats.

    Args:
        charge_raw: Raw charge value from params (int, ChargeList, "2+").

    Returns:
        Charge as int or None if not present/parseable.
    """
    if charge_raw is None:
        return None

    if isinstance(charge_raw, int):
        return charge_raw

    if isinstance(charge_raw, list) and len(charge_raw) > 0:
        return int(charge_raw[0])

    if isinstance(charge_raw, str):
        charge_str = charge_raw.split(" and ")[0].replace("+", "").replace("-", "").strip()
        if charge_str.isdigit():
            charge = int(charge_str)
            return -charge if "-" in charge_raw else charge

    return None


def _decode_rt_seconds(params: MGFParamsDict) -> float | None:
    """Extract RTINSECONDS, or None if absent or not numeric."""
    raw = params.get("rtinseconds")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return None
    return None


def _decode_mgf_precursor(params: MGFParamsDict, record_id: str) -> list[Precursor]:
    """Build the precursor list from PEPMASS and CHARGE.

    Returns:
        One precursor with one selected ion, or an empty list when the
        spectrum has no PEPMASS.
    """
    pepmass = _decode_pepmass(params.get("pepmass"), record_id)
    if pepmass is None:
        return []
    mz, intensity = pepmass
    ion = param_map(make_cv_param(SELECTED_ION_MZ, "selected ion m/z", mz, "MS:1000040"))
    charge = _decode_charge_value(params.get("charge"))
    if charge is not None:
        ion[CHARGE_STATE] = make_cv_param(CHARGE_STATE, "charge state", charge)
    if intensity is not None:
        ion[PEAK_INTENSITY] = make_cv_param(PEAK_INTENSITY, "peak intensity", intensity, "MS:1000131")
    return [Precursor(spectrum_ref=None, isolation_window={}, selected_ions=[ion], activation={})]


def _decode_mgf_scans(params: MGFParamsDict) -> list[ScanEvent]:
    """Build a single scan event carrying the scan start time, if any."""
    rt = _decode_rt_seconds(params)
    if rt is None:
        return []
    scan_params = param_map(make_cv_param(SCAN_START_TIME, "scan start time", rt, UNIT_SECOND))
    return [ScanEvent(params=scan_params, instrument_configuration_ref=None, scan_windows=[])]


def _format_user_value(value: MGFParamValue) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value if v is not None)
    return "" if value is None else str(value)


def _decode_mgf_user_params(params: MGFParamsDict) -> list[UserParam]:
    """Carry the params without a CV mapping as userParams, in file order."""
    return [
        UserParam(name=key.upper(), value=_format_user_value(value), type=None)
        for key, value in params.items()
        if key not in _MAPPED_KEYS
    ]


__all__ = [
    "PEAK_INTENSITY",
    "_decode_charge_value",
    "_decode_mgf_precursor",
    "_decode_mgf_scans",
    "_decode_mgf_title",
    "_decode_mgf_user_params",
    "_decode_pepmass",
    "_decode_rt_seconds",
]
