"""Binary array decoder and encoder.

Turns the transport form of one numeric array (text-encoded, possibly
compressed bytes plus a CodecDescriptor) into a NumericArray and back.
Errors are array-scoped and propagate to the caller; the structural
parser decides whether they cost the record or the document.

Checksums are "sha1:<hex>" over the decoded element bytes in the declared
dtype and byte order, so they verify what a reader actually obtains,
including for lossy codecs.
"""

from __future__ import annotations

import hashlib

import numpy as np

from msdata_io._exceptions import ChecksumMismatchError, TruncatedArrayError
from msdata_io.codecs.registry import CodecRegistry
from msdata_io.types.codec import CodecDescriptor, EncodedArray
from msdata_io.types.record import NumericArray, NumericValues, ParamMap

CHECKSUM_PREFIX = "sha1:"


def compute_checksum(element_bytes: bytes) -> str:
    """Return the "sha1:<hex>" checksum of element bytes."""
    return CHECKSUM_PREFIX + hashlib.sha1(element_bytes).hexdigest()


def array_checksum(values: NumericValues, descriptor: CodecDescriptor, registry: CodecRegistry) -> str:
    """Return the checksum of values laid out as the descriptor declares."""
    return compute_checksum(registry.element_bytes(descriptor, values))


def decode_array(
    data: bytes,
    descriptor: CodecDescriptor,
    registry: CodecRegistry,
    *,
    role: str,
    expected_length: int | None = None,
    checksum: str | None = None,
    series: str | None = None,
    params: ParamMap | None = None,
    strict: bool = False,
) -> NumericArray:
    """Decode one array from its transport form.

    Args:
        data: Encoded payload (base64 text as ASCII bytes, or raw bytes).
        descriptor: Declared transport representation.
        registry: Codec registry used to resolve the descriptor.
        role: Array type name.
        expected_length: Declared element count, if any.
        checksum: Declared "sha1:<hex>" checksum, if any.
        series: Independent series name, None for co-indexed arrays.
        params: Extra array parameters.
        strict: Raise on checksum mismatch instead of flagging the array.

    Returns:
        NumericArray with verified set to None (no checksum), True or False.

    Raises:
        UnsupportedCodecError: If the descriptor does not resolve.
        MalformedEncodingError: If the text encoding is invalid.
        CodecFailureError: If decompression fails.
        TruncatedArrayError: If the bytes are not a whole number of elements
            or the element count differs from expected_length.
        ChecksumMismatchError: If strict and the checksum does not match.
    """
    values = registry.decode(descriptor, data)
    if expected_length is not None and values.shape[0] != expected_length:
        raise TruncatedArrayError(
            expected_length,
            int(values.shape[0]),
            f"{role} decoded length differs from declared length",
        )

    verified: bool | None = None
    if checksum is not None:
        actual = array_checksum(values, descriptor, registry)
        verified = actual == checksum
        if not verified and strict:
            raise ChecksumMismatchError(checksum, actual)

    return NumericArray(
        role=role,
        values=values,
        descriptor=descriptor,
        checksum=checksum,
        verified=verified,
        series=series,
        params=dict(params) if params is not None else {},
    )


def encode_array(
    values: NumericValues,
    descriptor: CodecDescriptor,
    registry: CodecRegistry,
) -> EncodedArray:
    """Encode one array for transport.

    For lossy codecs the checksum covers the values a reader will decode,
    not the input values.

    Raises:
        UnsupportedCodecError: If the descriptor does not resolve.
        CodecFailureError: If compression fails.
    """
    flat = np.asarray(values).reshape(-1)
    payload = registry.encode(descriptor, flat)
    if registry.is_lossy(descriptor):
        checksum = array_checksum(registry.decode(descriptor, payload), descriptor, registry)
    else:
        checksum = array_checksum(flat, descriptor, registry)
    return EncodedArray(
        payload=payload,
        encoded_length=len(payload),
        array_length=int(flat.shape[0]),
        checksum=checksum,
    )


def verify_array(array: NumericArray, registry: CodecRegistry) -> bool:
    """Re-check a retained array against its declared checksum.

    Returns:
        True if the array declares no checksum or the checksum matches.

    Raises:
        ChecksumMismatchError: If the checksum does not match.
    """
    declared = array["checksum"]
    if declared is None:
        return True
    actual = array_checksum(array["values"], array["descriptor"], registry)
    if actual != declared:
        raise ChecksumMismatchError(declared, actual)
    return True


__all__ = [
    "CHECKSUM_PREFIX",
    "array_checksum",
    "compute_checksum",
    "decode_array",
    "encode_array",
    "verify_array",
]
