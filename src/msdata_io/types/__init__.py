"""TypedDict definitions for mass-spectrometry data structures.

All types are TypedDicts with strict typing; numeric payloads are numpy
arrays.
"""

from __future__ import annotations

# Codec types
from msdata_io.types.codec import (
    CodecDescriptor,
    EncodedArray,
    make_descriptor,
)

# Common types
from msdata_io.types.common import (
    ByteOrder,
    CompressionName,
    DTypeName,
    EncodingName,
    ErrorPolicy,
    ParamValue,
    RecordKind,
)

# Document types
from msdata_io.types.document import (
    DocumentMeta,
    FileDescription,
    ParamGroup,
    SourceFile,
    empty_document_meta,
)

# Index types
from msdata_io.types.index import (
    IndexEntry,
    IndexStrategy,
    make_entry,
)

# Record types
from msdata_io.types.record import (
    CVParam,
    NumericArray,
    NumericValues,
    ParamMap,
    Precursor,
    Product,
    Record,
    RecordDiagnostic,
    ScanEvent,
    ScanWindow,
    UserParam,
)

__all__ = [
    "ByteOrder",
    "CVParam",
    "CodecDescriptor",
    "CompressionName",
    "DTypeName",
    "DocumentMeta",
    "EncodedArray",
    "EncodingName",
    "ErrorPolicy",
    "FileDescription",
    "IndexEntry",
    "IndexStrategy",
    "NumericArray",
    "NumericValues",
    "ParamGroup",
    "ParamMap",
    "ParamValue",
    "Precursor",
    "Product",
    "Record",
    "RecordDiagnostic",
    "RecordKind",
    "ScanEvent",
    "ScanWindow",
    "SourceFile",
    "UserParam",
    "empty_document_meta",
    "make_descriptor",
    "make_entry",
]
