"""MS-Numpress codecs backed by pynumpress.

All three schemes are lossy and operate on float64 values: element bytes
are widened to float64 before encoding and narrowed back to the declared
dtype after decoding. Linear and slof streams start with the fixed point
as a big-endian double.
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from numpy.typing import NDArray

from msdata_io._exceptions import CodecFailureError
from msdata_io._protocols.numpress import (
    NumpressModuleProtocol,
    _load_numpress,
    _numpress_available,
)
from msdata_io.codecs.registry import CodecRegistry, CompressionCodec, ZlibCompression
from msdata_io.logging import get_logger

NumpressKind = Literal["linear", "pic", "slof"]

_logger = get_logger(__name__)


def _widen(raw: bytes, dtype: np.dtype[np.generic]) -> NDArray[np.float64]:
    return np.frombuffer(raw, dtype=dtype).astype(np.float64)


class NumpressCodec:
    """One MS-Numpress scheme.

    Empty arrays encode to an empty stream.
    """

    def __init__(self, kind: NumpressKind, module: NumpressModuleProtocol) -> None:
        self._kind: NumpressKind = kind
        self._np = module

    @property
    def kind(self) -> NumpressKind:
        return self._kind

    @property
    def lossy(self) -> bool:
        return True

    def fixed_point(self, values: NDArray[np.float64]) -> float:
        """Return the fixed point the encoder picks for values (0.0 for pic)."""
        if self._kind == "linear":
            return float(self._np.optimal_linear_fixed_point(values))
        if self._kind == "slof":
            return float(self._np.optimal_slof_fixed_point(values))
        return 0.0

    def decompress(self, data: bytes, dtype: np.dtype[np.generic]) -> bytes:
        if len(data) == 0:
            return b""
        buffer = np.frombuffer(data, dtype=np.uint8)
        try:
            if self._kind == "linear":
                decoded = self._np.decode_linear(buffer)
            elif self._kind == "slof":
                decoded = self._np.decode_slof(buffer)
            else:
                decoded = self._np.decode_pic(buffer)
        except (ValueError, RuntimeError) as e:
            raise CodecFailureError(f"numpress-{self._kind}", str(e)) from e
        return np.asarray(decoded, dtype=np.float64).astype(dtype).tobytes()

    def compress(self, raw: bytes, dtype: np.dtype[np.generic]) -> bytes:
        values = _widen(raw, dtype)
        if values.size == 0:
            return b""
        try:
            if self._kind == "linear":
                encoded = self._np.encode_linear(values, self.fixed_point(values))
            elif self._kind == "slof":
                encoded = self._np.encode_slof(values, self.fixed_point(values))
            else:
                encoded = self._np.encode_pic(values)
        except (ValueError, RuntimeError) as e:
            raise CodecFailureError(f"numpress-{self._kind}", str(e)) from e
        return np.asarray(encoded, dtype=np.uint8).tobytes()

    def tolerance(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        if values.size == 0:
            return np.zeros(0, dtype=np.float64)
        if self._kind == "pic":
            return np.full(values.shape, 0.5, dtype=np.float64)
        fixed_point = self.fixed_point(values)
        if self._kind == "linear":
            return np.full(values.shape, 0.5 / fixed_point, dtype=np.float64)
        # slof stores log(x + 1) * fixed_point rounded to an integer.
        return (np.abs(values) + 1.0) * (np.exp(0.5 / fixed_point) - 1.0)


class ZlibWrappedCodec:
    """A codec whose output is additionally zlib-compressed."""

    def __init__(self, inner: CompressionCodec) -> None:
        self._inner = inner
        self._zlib = ZlibCompression()

    @property
    def lossy(self) -> bool:
        return self._inner.lossy

    def decompress(self, data: bytes, dtype: np.dtype[np.generic]) -> bytes:
        return self._inner.decompress(self._zlib.decompress(data, dtype), dtype)

    def compress(self, raw: bytes, dtype: np.dtype[np.generic]) -> bytes:
        return self._zlib.compress(self._inner.compress(raw, dtype), dtype)

    def tolerance(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return self._inner.tolerance(values)


def register_numpress(registry: CodecRegistry) -> None:
    """Register the numpress schemes if pynumpress is importable.

    When it is not, numpress descriptors stay unresolvable and fail with
    UnsupportedCodecError.
    """
    if not _numpress_available():
        _logger.debug("pynumpress not installed; numpress codecs unavailable")
        return
    module = _load_numpress()
    kinds: tuple[NumpressKind, ...] = ("linear", "pic", "slof")
    for kind in kinds:
        codec = NumpressCodec(kind, module)
        registry.register_compression(f"numpress-{kind}", codec)
        registry.register_compression(f"numpress-{kind}+zlib", ZlibWrappedCodec(codec))


__all__ = [
    "NumpressCodec",
    "NumpressKind",
    "ZlibWrappedCodec",
    "register_numpress",
]
