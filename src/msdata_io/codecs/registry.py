"""Codec registry for binary array transport.

Strict typing; no optional fallbacks. Codecs are registered explicitly on
a registry value and never substituted: a descriptor naming a codec that
is not registered fails with UnsupportedCodecError.

A descriptor resolves to three parts applied in order when decoding:
text encoding, compression, then reinterpretation of the bytes as the
declared dtype and byte order. Encoding applies them in reverse.
"""

from __future__ import annotations

import base64
import binascii
import zlib
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from msdata_io._exceptions import (
    CodecFailureError,
    MalformedEncodingError,
    TruncatedArrayError,
    UnsupportedCodecError,
)
from msdata_io.types.codec import CodecDescriptor
from msdata_io.types.common import ByteOrder, CompressionName, DTypeName
from msdata_io.types.record import NumericValues

# PSI-MS accessions for compression schemes.
COMPRESSION_ACCESSIONS: dict[str, CompressionName] = {
    "MS:1000576": "none",
    "MS:1000574": "zlib",
    "MS:1002312": "numpress-linear",
    "MS:1002313": "numpress-pic",
    "MS:1002314": "numpress-slof",
    "MS:1002746": "numpress-linear+zlib",
    "MS:1002747": "numpress-pic+zlib",
    "MS:1002748": "numpress-slof+zlib",
}

# PSI-MS accessions for binary data types.
DTYPE_ACCESSIONS: dict[str, DTypeName] = {
    "MS:1000521": "float32",
    "MS:1000523": "float64",
    "MS:1000519": "int32",
    "MS:1000522": "int64",
}

_COMPRESSION_NAMES: dict[str, str] = {
    "none": "no compression",
    "zlib": "zlib compression",
    "numpress-linear": "MS-Numpress linear prediction compression",
    "numpress-pic": "MS-Numpress positive integer compression",
    "numpress-slof": "MS-Numpress short logged float compression",
    "numpress-linear+zlib": "MS-Numpress linear prediction compression followed by zlib compression",
    "numpress-pic+zlib": "MS-Numpress positive integer compression followed by zlib compression",
    "numpress-slof+zlib": "MS-Numpress short logged float compression followed by zlib compression",
}

_DTYPE_NAMES: dict[str, str] = {
    "float32": "32-bit float",
    "float64": "64-bit float",
    "int32": "32-bit integer",
    "int64": "64-bit integer",
}


class CompressionCodec(Protocol):
    """A reversible (or bounded-error) byte transform.

    Codecs work on the element bytes of an array. Value-aware codecs
    (MS-Numpress) use the dtype to interpret them.
    """

    @property
    def lossy(self) -> bool:
        """True if decompress(compress(x)) may differ from x."""
        ...

    def decompress(self, data: bytes, dtype: np.dtype[np.generic]) -> bytes:
        """Return element bytes in the given dtype."""
        ...

    def compress(self, raw: bytes, dtype: np.dtype[np.generic]) -> bytes:
        """Return the compressed form of element bytes in the given dtype."""
        ...

    def tolerance(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        """Return the per-element absolute error bound for values."""
        ...


class EncodingCodec(Protocol):
    """A text encoding applied after compression."""

    def decode(self, text: bytes) -> bytes:
        """Return the bytes represented by text."""
        ...

    def encode(self, raw: bytes) -> bytes:
        """Return the text representation of raw as ASCII bytes."""
        ...


class _IdentityCompression:
    @property
    def lossy(self) -> bool:
        return False

    def decompress(self, data: bytes, dtype: np.dtype[np.generic]) -> bytes:
        return data

    def compress(self, raw: bytes, dtype: np.dtype[np.generic]) -> bytes:
        return raw

    def tolerance(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.zeros(values.shape, dtype=np.float64)


class ZlibCompression:
    """DEFLATE in a zlib container."""

    @property
    def lossy(self) -> bool:
        return False

    def decompress(self, data: bytes, dtype: np.dtype[np.generic]) -> bytes:
        try:
            return zlib.decompress(data)
        except zlib.error as e:
            raise CodecFailureError("zlib", str(e)) from e

    def compress(self, raw: bytes, dtype: np.dtype[np.generic]) -> bytes:
        return zlib.compress(raw)

    def tolerance(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.zeros(values.shape, dtype=np.float64)


class _Base64Encoding:
    def decode(self, text: bytes) -> bytes:
        # Whitespace between base64 quanta is legal in XML text content.
        compact = b"".join(text.split())
        try:
            return base64.b64decode(compact, validate=True)
        except binascii.Error as e:
            raise MalformedEncodingError("base64", str(e)) from e

    def encode(self, raw: bytes) -> bytes:
        return base64.b64encode(raw)


class _IdentityEncoding:
    def decode(self, text: bytes) -> bytes:
        return text

    def encode(self, raw: bytes) -> bytes:
        return raw


def numpy_dtype(dtype: DTypeName, byte_order: ByteOrder) -> np.dtype[np.generic]:
    """Build the numpy dtype for a descriptor's element type and byte order.

    Raises:
        UnsupportedCodecError: If either component is unknown.
    """
    if dtype not in _DTYPE_NAMES:
        raise UnsupportedCodecError("dtype", str(dtype))
    if byte_order == "little":
        return np.dtype(dtype).newbyteorder("<")
    if byte_order == "big":
        return np.dtype(dtype).newbyteorder(">")
    raise UnsupportedCodecError("byte_order", str(byte_order))


class ResolvedCodec:
    """The transform pair and element type a descriptor resolves to."""

    def __init__(
        self,
        compression: CompressionCodec,
        encoding: EncodingCodec,
        dtype: np.dtype[np.generic],
    ) -> None:
        self.compression = compression
        self.encoding = encoding
        self.dtype = dtype


class CodecRegistry:
    """Registry of compression and text-encoding codecs keyed by name."""

    def __init__(self) -> None:
        self._compressions: dict[str, CompressionCodec] = {}
        self._encodings: dict[str, EncodingCodec] = {}

    def register_compression(self, name: str, codec: CompressionCodec) -> None:
        self._compressions[name] = codec

    def register_encoding(self, name: str, codec: EncodingCodec) -> None:
        self._encodings[name] = codec

    def compressions(self) -> list[str]:
        return sorted(self._compressions.keys())

    def encodings(self) -> list[str]:
        return sorted(self._encodings.keys())

    def resolve(self, descriptor: CodecDescriptor) -> ResolvedCodec:
        """Resolve a descriptor to exactly one transform pair.

        Raises:
            UnsupportedCodecError: Naming the first component that does not
                resolve.
        """
        compression = self._compressions.get(descriptor["compression"])
        if compression is None:
            raise UnsupportedCodecError("compression", descriptor["compression"])
        encoding = self._encodings.get(descriptor["encoding"])
        if encoding is None:
            raise UnsupportedCodecError("encoding", descriptor["encoding"])
        dtype = numpy_dtype(descriptor["dtype"], descriptor["byte_order"])
        return ResolvedCodec(compression, encoding, dtype)

    def decode(self, descriptor: CodecDescriptor, data: bytes) -> NumericValues:
        """Decode transport bytes into values of the declared dtype.

        The returned array always has native byte order.

        Raises:
            UnsupportedCodecError: If the descriptor does not resolve.
            MalformedEncodingError: If the text encoding is invalid.
            CodecFailureError: If decompression fails.
            TruncatedArrayError: If the byte length is not a whole number of
                elements.
        """
        resolved = self.resolve(descriptor)
        raw = resolved.compression.decompress(resolved.encoding.decode(data), resolved.dtype)
        width = resolved.dtype.itemsize
        if len(raw) % width != 0:
            raise TruncatedArrayError(
                width, len(raw), f"{len(raw)} bytes is not a multiple of the {descriptor['dtype']} width"
            )
        values: NumericValues = np.frombuffer(raw, dtype=resolved.dtype).astype(
            resolved.dtype.newbyteorder("="), copy=True
        )
        return values

    def element_bytes(self, descriptor: CodecDescriptor, values: NumericValues) -> bytes:
        """Return values as bytes in the declared dtype and byte order."""
        dtype = numpy_dtype(descriptor["dtype"], descriptor["byte_order"])
        return np.ascontiguousarray(values, dtype=dtype).tobytes()

    def encode(self, descriptor: CodecDescriptor, values: NumericValues) -> bytes:
        """Encode values for transport.

        Raises:
            UnsupportedCodecError: If the descriptor does not resolve.
            CodecFailureError: If compression fails.
        """
        resolved = self.resolve(descriptor)
        raw = np.ascontiguousarray(values, dtype=resolved.dtype).tobytes()
        return resolved.encoding.encode(resolved.compression.compress(raw, resolved.dtype))

    def tolerance(self, descriptor: CodecDescriptor, values: NumericValues) -> NDArray[np.float64]:
        """Return the per-element absolute error bound of a round trip.

        Zero for lossless codecs.
        """
        resolved = self.resolve(descriptor)
        return resolved.compression.tolerance(np.asarray(values, dtype=np.float64))

    def is_lossy(self, descriptor: CodecDescriptor) -> bool:
        return self.resolve(descriptor).compression.lossy

    def compression_for_accession(self, accession: str) -> CompressionName:
        """Map a PSI-MS compression accession to its scheme name.

        Raises:
            UnsupportedCodecError: If the accession is not a known scheme.
        """
        name = COMPRESSION_ACCESSIONS.get(accession)
        if name is None:
            raise UnsupportedCodecError("compression", accession)
        return name

    def accession_for_compression(self, name: str) -> str:
        for accession, candidate in COMPRESSION_ACCESSIONS.items():
            if candidate == name:
                return accession
        raise UnsupportedCodecError("compression", name)

    def dtype_for_accession(self, accession: str) -> DTypeName:
        name = DTYPE_ACCESSIONS.get(accession)
        if name is None:
            raise UnsupportedCodecError("dtype", accession)
        return name

    def accession_for_dtype(self, name: str) -> str:
        for accession, candidate in DTYPE_ACCESSIONS.items():
            if candidate == name:
                return accession
        raise UnsupportedCodecError("dtype", name)


def compression_term_name(name: str) -> str:
    """Return the PSI-MS term name for a compression scheme."""
    return _COMPRESSION_NAMES[name]


def dtype_term_name(name: str) -> str:
    """Return the PSI-MS term name for a binary data type."""
    return _DTYPE_NAMES[name]


class _RegisterFn(Protocol):
    def __call__(self, registry: CodecRegistry) -> None: ...


def default_registry() -> CodecRegistry:
    """Build the default registry with supported codecs.

    Includes:
    - none, zlib compression and base64, none encodings (always)
    - numpress-linear, numpress-pic, numpress-slof and their +zlib variants
      (only when pynumpress is installed)
    """
    reg = CodecRegistry()
    reg.register_compression("none", _IdentityCompression())
    reg.register_compression("zlib", ZlibCompression())
    reg.register_encoding("base64", _Base64Encoding())
    reg.register_encoding("none", _IdentityEncoding())

    numpress_mod = __import__("msdata_io.codecs.numpress", fromlist=["register_numpress"])
    register_numpress: _RegisterFn = numpress_mod.register_numpress
    register_numpress(reg)
    return reg


__all__ = [
    "COMPRESSION_ACCESSIONS",
    "DTYPE_ACCESSIONS",
    "CodecRegistry",
    "CompressionCodec",
    "EncodingCodec",
    "ResolvedCodec",
    "ZlibCompression",
    "compression_term_name",
    "default_registry",
    "dtype_term_name",
    "numpy_dtype",
]
