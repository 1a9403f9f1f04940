"""Hand-off point for signal processing collaborators.

The library does no peak picking itself. A picker is any object with a
pick(axis, values) method; apply_peak_picker feeds it one record's
arrays and rebuilds the record as a centroid spectrum.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from msdata_io._exceptions import RecordInvariantError
from msdata_io.logging import get_logger
from msdata_io.record import CENTROID_SPECTRUM, PROFILE_SPECTRUM, get_array, make_cv_param, make_record
from msdata_io.types.record import NumericArray, Record

_logger = get_logger(__name__)


class PeakPickerProtocol(Protocol):
    """Protocol for peak pickers."""

    def pick(
        self,
        axis: NDArray[np.float64],
        values: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return the picked (axis, values) pair, equal in length."""
        ...


def _replace_values(array: NumericArray, values: NDArray[np.float64]) -> NumericArray:
    return NumericArray(
        role=array["role"],
        values=values.astype(array["values"].dtype),
        descriptor=array["descriptor"],
        checksum=None,
        verified=None,
        series=array["series"],
        params=dict(array["params"]),
    )


def apply_peak_picker(
    record: Record,
    picker: PeakPickerProtocol,
    *,
    axis_role: str = "m/z array",
    value_role: str = "intensity array",
) -> Record:
    """Run a peak picker over a record and return the centroided record.

    Other co-indexed arrays no longer line up with the picked points and
    are dropped; arrays with a series name are kept.

    Args:
        record: Profile record.
        picker: Peak picker.
        axis_role: Role of the axis array.
        value_role: Role of the value array.

    Returns:
        New Record flagged as a centroid spectrum. The input is unchanged.

    Raises:
        RecordInvariantError: If either array is missing or the picker
            returns arrays of different lengths.
    """
    axis = get_array(record, axis_role)
    values = get_array(record, value_role)
    if axis is None or values is None:
        raise RecordInvariantError(record["id"], f"peak picking needs {axis_role} and {value_role}")
    new_axis, new_values = picker.pick(
        np.asarray(axis["values"], dtype=np.float64),
        np.asarray(values["values"], dtype=np.float64),
    )
    if new_axis.shape != new_values.shape:
        raise RecordInvariantError(
            record["id"],
            f"picker returned {new_axis.shape[0]} axis points and {new_values.shape[0]} values",
        )

    arrays = {
        axis_role: _replace_values(axis, new_axis),
        value_role: _replace_values(values, new_values),
    }
    for role, array in record["arrays"].items():
        if role in arrays:
            continue
        if array["series"] is None:
            _logger.debug("dropping %s after peak picking", role, extra={"record_id": record["id"], "role": role})
            continue
        arrays[role] = array

    params = {k: v for k, v in record["params"].items() if k != PROFILE_SPECTRUM}
    params[CENTROID_SPECTRUM] = make_cv_param(CENTROID_SPECTRUM, "centroid spectrum")
    return make_record(
        record["kind"],
        record["id"],
        record["index"],
        arrays=arrays,
        params=params,
        user_params=list(record["user_params"]),
        scans=list(record["scans"]),
        precursors=list(record["precursors"]),
        products=list(record["products"]),
        diagnostics=list(record["diagnostics"]),
    )


__all__ = [
    "PeakPickerProtocol",
    "apply_peak_picker",
]
