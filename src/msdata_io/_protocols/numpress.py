"""Protocol definitions for the pynumpress library.

Provides type-safe interfaces to the MS-Numpress encoders and decoders
without importing pynumpress at module load time. pynumpress is an
optional dependency; callers check availability with _numpress_available.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float64]
ByteArray = NDArray[np.uint8]


class _FixedPointEncodeFn(Protocol):
    def __call__(self, data: FloatArray, fixed_point: float) -> ByteArray: ...


class _EncodeFn(Protocol):
    def __call__(self, data: FloatArray) -> ByteArray: ...


class _DecodeFn(Protocol):
    def __call__(self, data: ByteArray) -> FloatArray: ...


class _OptimalFixedPointFn(Protocol):
    def __call__(self, data: FloatArray) -> float: ...


class NumpressModuleProtocol(Protocol):
    """Protocol for the pynumpress module.

    Encoders take float64 arrays and return uint8 arrays whose first
    8 bytes hold the fixed point (linear, slof). Decoders take uint8 arrays.
    """

    encode_linear: _FixedPointEncodeFn
    decode_linear: _DecodeFn
    optimal_linear_fixed_point: _OptimalFixedPointFn
    encode_slof: _FixedPointEncodeFn
    decode_slof: _DecodeFn
    optimal_slof_fixed_point: _OptimalFixedPointFn
    encode_pic: _EncodeFn
    decode_pic: _DecodeFn


def _load_numpress() -> NumpressModuleProtocol:
    """Import pynumpress with strict typing.

    Returns:
        NumpressModuleProtocol for the loaded module.

    Raises:
        ModuleNotFoundError: If pynumpress is not installed.
    """
    mod: NumpressModuleProtocol = __import__("pynumpress")
    return mod


def _numpress_available() -> bool:
    """Check whether pynumpress can be imported."""
    try:
        _load_numpress()
    except ModuleNotFoundError:
        return False
    return True


__all__ = [
    "ByteArray",
    "FloatArray",
    "NumpressModuleProtocol",
    "_load_numpress",
    "_numpress_available",
]
