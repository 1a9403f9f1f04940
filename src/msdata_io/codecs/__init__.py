"""Codec registry and codec implementations for binary arrays."""

from __future__ import annotations

from msdata_io.codecs.registry import (
    COMPRESSION_ACCESSIONS,
    DTYPE_ACCESSIONS,
    CodecRegistry,
    CompressionCodec,
    EncodingCodec,
    ResolvedCodec,
    default_registry,
    numpy_dtype,
)

__all__ = [
    "COMPRESSION_ACCESSIONS",
    "DTYPE_ACCESSIONS",
    "CodecRegistry",
    "CompressionCodec",
    "EncodingCodec",
    "ResolvedCodec",
    "default_registry",
    "numpy_dtype",
]
