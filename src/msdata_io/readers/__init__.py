"""Reader implementations for mass spectrometry data formats."""

from __future__ import annotations

from msdata_io.readers.base import RandomAccessReaderProtocol, RecordReaderProtocol
from msdata_io.readers.mgf import MGFReader
from msdata_io.readers.mzml import MzMLReader
from msdata_io.readers.mzmlb import MzMLbReader

__all__ = [
    "MGFReader",
    "MzMLReader",
    "MzMLbReader",
    "RandomAccessReaderProtocol",
    "RecordReaderProtocol",
]
