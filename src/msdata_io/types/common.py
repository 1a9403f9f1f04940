"""Common type definitions for msdata_io library.

Provides shared literal types used across the codec, record and index
modules.
"""

from __future__ import annotations

from typing import Literal

# Record namespaces; identifiers are unique within each, not across them.
RecordKind = Literal["spectrum", "chromatogram"]

# Scalar value carried by a controlled-vocabulary parameter.
ParamValue = str | int | float | None

# Compression schemes understood by the default codec registry.
CompressionName = Literal[
    "none",
    "zlib",
    "numpress-linear",
    "numpress-pic",
    "numpress-slof",
    "numpress-linear+zlib",
    "numpress-pic+zlib",
    "numpress-slof+zlib",
]

# Numeric element types of binary arrays.
DTypeName = Literal["float32", "float64", "int32", "int64"]

ByteOrder = Literal["little", "big"]

# Text encodings applied on top of compression. "none" is used by
# containers that store raw bytes (mzMLb datasets).
EncodingName = Literal["base64", "none"]

# Error handling policy for record-scoped failures.
ErrorPolicy = Literal["skip", "raise"]


__all__ = [
    "ByteOrder",
    "CompressionName",
    "DTypeName",
    "EncodingName",
    "ErrorPolicy",
    "ParamValue",
    "RecordKind",
]
