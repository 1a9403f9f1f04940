"""MGF (Mascot Generic Format) writer implementation.

Writes spectrum Records as MGF peak lists via pyteomics.mgf.write,
reached through hooks.write_mgf. Only the m/z and intensity arrays, the
first selected ion and the scan start time survive; MGF has no place for
the rest.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import numpy as np

from msdata_io._decoders.mgf import PEAK_INTENSITY
from msdata_io._exceptions import WriterError
from msdata_io._protocols.mgf import MGFParamsDict, MGFWriteSpectrum
from msdata_io.logging import get_logger
from msdata_io.record import CHARGE_STATE, SELECTED_ION_MZ, get_array, precursor_mz, scan_start_time
from msdata_io.testing import hooks
from msdata_io.types.record import ParamMap, Record

_logger = get_logger(__name__)


def _first_mz_ion(record: Record) -> ParamMap | None:
    for precursor in record["precursors"]:
        for ion in precursor["selected_ions"]:
            if SELECTED_ION_MZ in ion:
                return ion
    return None


def _precursor_params(record: Record) -> MGFParamsDict:
    params: MGFParamsDict = {}
    mz = precursor_mz(record)
    ion = _first_mz_ion(record)
    if mz is None or ion is None:
        return params
    intensity = ion.get(PEAK_INTENSITY)
    if intensity is not None and isinstance(intensity["value"], (int, float)):
        params["pepmass"] = (mz, float(intensity["value"]))
    else:
        params["pepmass"] = (mz, None)
    charge = ion.get(CHARGE_STATE)
    if charge is not None and isinstance(charge["value"], int):
        params["charge"] = [charge["value"]]
    return params


def _record_to_mgf(record: Record, out_path: Path) -> MGFWriteSpectrum:
    """Convert a spectrum Record to the dict shape pyteomics writes.

    Raises:
        WriterError: If the record is not a spectrum or lacks m/z or
            intensity arrays.
    """
    if record["kind"] != "spectrum":
        raise WriterError(str(out_path), f"MGF holds spectra only, got {record['kind']} {record['id']}")
    mz = get_array(record, "m/z array")
    intensity = get_array(record, "intensity array")
    if mz is None or intensity is None:
        raise WriterError(str(out_path), f"{record['id']} lacks an m/z or intensity array")

    params: MGFParamsDict = {"title": record["id"]}
    params.update(_precursor_params(record))
    rt = scan_start_time(record)
    if rt is not None:
        params["rtinseconds"] = rt
    for user_param in record["user_params"]:
        params.setdefault(user_param["name"].lower(), user_param["value"])

    return MGFWriteSpectrum(
        params=params,
        m_z_array=np.asarray(mz["values"], dtype=np.float64),
        intensity_array=np.asarray(intensity["values"], dtype=np.float64),
    )


def write_mgf(records: Iterable[Record], out_path: Path) -> int:
    """Write spectrum records to an MGF file.

    Args:
        records: Spectrum records in output order.
        out_path: Output .mgf path.

    Returns:
        Number of spectra written.

    Raises:
        WriterError: If a record cannot be represented or writing fails.
    """
    spectra = [_record_to_mgf(record, out_path) for record in records]
    out_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        hooks.write_mgf(spectra, out_path)
    except OSError as e:
        raise WriterError(str(out_path), f"Failed to write MGF: {e}") from e
    _logger.info("wrote %d spectra", len(spectra), extra={"source": str(out_path), "count": len(spectra)})
    return len(spectra)


__all__ = [
    "write_mgf",
]
