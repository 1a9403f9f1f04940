"""TypedDict definitions for binary array transport descriptors."""

from __future__ import annotations

from typing import TypedDict

from msdata_io.types.common import ByteOrder, CompressionName, DTypeName, EncodingName


class CodecDescriptor(TypedDict):
    """Declared transport representation of one binary array.

    Attributes:
        compression: Compression scheme name.
        dtype: Numeric element type.
        byte_order: Byte order of multi-byte elements.
        encoding: Text encoding applied after compression.
    """

    compression: CompressionName
    dtype: DTypeName
    byte_order: ByteOrder
    encoding: EncodingName


class EncodedArray(TypedDict):
    """Result of encoding one numeric array for transport.

    Attributes:
        payload: Encoded bytes (base64 text as ASCII, or raw bytes).
        encoded_length: Length of the payload in bytes.
        array_length: Number of elements encoded.
        checksum: "sha1:<hex>" over the decoded bytes.
    """

    payload: bytes
    encoded_length: int
    array_length: int
    checksum: str


def make_descriptor(
    compression: CompressionName = "none",
    dtype: DTypeName = "float64",
    byte_order: ByteOrder = "little",
    encoding: EncodingName = "base64",
) -> CodecDescriptor:
    """Create a CodecDescriptor with mzML defaults.

    Args:
        compression: Compression scheme name.
        dtype: Numeric element type.
        byte_order: Byte order of multi-byte elements.
        encoding: Text encoding.

    Returns:
        CodecDescriptor TypedDict.
    """
    return CodecDescriptor(
        compression=compression,
        dtype=dtype,
        byte_order=byte_order,
        encoding=encoding,
    )


__all__ = [
    "CodecDescriptor",
    "EncodedArray",
    "make_descriptor",
]
