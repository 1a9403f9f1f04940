"""Decoder functions for converting external data to typed structures.

Internal module providing type-safe conversion from external library
outputs (pyteomics dicts) to our TypedDict structures.
"""

from __future__ import annotations

from msdata_io._decoders.mgf import (
    PEAK_INTENSITY,
    _decode_charge_value,
    _decode_mgf_precursor,
    _decode_mgf_scans,
    _decode_mgf_title,
    _decode_mgf_user_params,
    _decode_pepmass,
    _decode_rt_seconds,
)

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
