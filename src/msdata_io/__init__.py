"""Strictly typed IO for mass spectrometry data files.

This library provides readers and writers for:
- mzML and indexedmzML documents (streaming, offset-indexed random access)
- mzMLb containers (via h5py)
- MGF peak lists (via pyteomics)

Binary arrays go through a pluggable codec registry (base64, zlib,
MS-Numpress via pynumpress) with per-array SHA-1 checksums.

All data structures use TypedDicts for strict typing.
"""

from __future__ import annotations

from msdata_io._exceptions import (
    ChecksumMismatchError,
    CodecError,
    CodecFailureError,
    IndexUnavailableError,
    InvalidIndexError,
    MalformedDocumentError,
    MalformedEncodingError,
    MGFReadError,
    MsDataIOError,
    RecordInvariantError,
    RecordScopedError,
    RecordSyntaxError,
    TruncatedArrayError,
    UnknownRecordError,
    UnsupportedCodecError,
    WriterError,
)
from msdata_io._version import __version__
from msdata_io.binary import decode_array, encode_array, verify_array
from msdata_io.codecs import CodecRegistry, default_registry
from msdata_io.config import IOSettings, load_settings
from msdata_io.dispatch import aread_records, read_parallel
from msdata_io.index import OffsetIndex, build_index, document_checksum, verify_file_checksum
from msdata_io.logging import get_logger, setup_logging
from msdata_io.processing import PeakPickerProtocol, apply_peak_picker
from msdata_io.readers import (
    MGFReader,
    MzMLbReader,
    MzMLReader,
    RandomAccessReaderProtocol,
    RecordReaderProtocol,
)
from msdata_io.record import (
    get_array,
    make_array,
    make_cv_param,
    make_record,
    record_equal,
)
from msdata_io.types import (
    CodecDescriptor,
    CVParam,
    DocumentMeta,
    IndexEntry,
    NumericArray,
    Record,
    RecordDiagnostic,
    RecordKind,
    UserParam,
    make_descriptor,
)
from msdata_io.writers import MzMLbWriter, MzMLWriter, RecordWriterProtocol, write_mgf

__all__ = [
    "CVParam",
    "ChecksumMismatchError",
    "CodecDescriptor",
    "CodecError",
    "CodecFailureError",
    "CodecRegistry",
    "DocumentMeta",
    "IOSettings",
    "IndexEntry",
    "IndexUnavailableError",
    "InvalidIndexError",
    "MGFReadError",
    "MGFReader",
    "MalformedDocumentError",
    "MalformedEncodingError",
    "MsDataIOError",
    "MzMLReader",
    "MzMLWriter",
    "MzMLbReader",
    "MzMLbWriter",
    "NumericArray",
    "OffsetIndex",
    "PeakPickerProtocol",
    "RandomAccessReaderProtocol",
    "Record",
    "RecordDiagnostic",
    "RecordInvariantError",
    "RecordKind",
    "RecordReaderProtocol",
    "RecordScopedError",
    "RecordSyntaxError",
    "RecordWriterProtocol",
    "TruncatedArrayError",
    "UnknownRecordError",
    "UnsupportedCodecError",
    "UserParam",
    "WriterError",
    "__version__",
    "apply_peak_picker",
    "aread_records",
    "build_index",
    "decode_array",
    "default_registry",
    "document_checksum",
    "encode_array",
    "get_array",
    "get_logger",
    "load_settings",
    "make_array",
    "make_cv_param",
    "make_descriptor",
    "make_record",
    "read_parallel",
    "record_equal",
    "setup_logging",
    "verify_array",
    "verify_file_checksum",
    "write_mgf",
]
