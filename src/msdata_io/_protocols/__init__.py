"""Protocol definitions for external library abstraction.

Internal protocols used to provide type-safe interfaces to optional
external libraries (pynumpress, h5py, pyteomics) without importing them
directly at module load time.
"""

from __future__ import annotations

# h5py protocols
from msdata_io._protocols.h5py import (
    H5AttrsProtocol,
    H5DatasetProtocol,
    H5FileProtocol,
    H5Mode,
    _open_h5,
)

# pyteomics.mgf protocols
from msdata_io._protocols.mgf import (
    MGFParamsDict,
    MGFReaderProtocol,
    MGFSpectrumProtocol,
    MGFWriteSpectrum,
    _open_mgf,
    _write_mgf,
)

# pynumpress protocols
from msdata_io._protocols.numpress import (
    NumpressModuleProtocol,
    _load_numpress,
    _numpress_available,
)

__all__ = [
    "H5AttrsProtocol",
    "H5DatasetProtocol",
    "H5FileProtocol",
    "H5Mode",
    "MGFParamsDict",
    "MGFReaderProtocol",
    "MGFSpectrumProtocol",
    "MGFWriteSpectrum",
    "NumpressModuleProtocol",
    "_load_numpress",
    "_numpress_available",
    "_open_h5",
    "_open_mgf",
    "_write_mgf",
]
