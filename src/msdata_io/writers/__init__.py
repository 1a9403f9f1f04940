"""Writer implementations for mass spectrometry data formats."""

from __future__ import annotations

from msdata_io.writers.base import RecordWriterProtocol
from msdata_io.writers.mgf import write_mgf
from msdata_io.writers.mzml import MzMLWriter
from msdata_io.writers.mzmlb import MzMLbWriter

__all__ = [
    "MzMLWriter",
    "MzMLbWriter",
    "RecordWriterProtocol",
    "write_mgf",
]
