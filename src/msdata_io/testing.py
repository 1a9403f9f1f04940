"""Test hooks for msdata_io library.

This module provides hooks for testing without mocking or monkeypatching.
Production code calls hooks directly; tests set hooks to fakes.

Usage:
    from msdata_io.testing import hooks, reset_hooks

    # In tests:
    def test_something() -> None:
        store = FakeH5Store()
        hooks.open_h5 = store.open
        # ... test code ...

    # Use reset_hooks() in conftest.py fixtures to restore defaults.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from types import TracebackType

import numpy as np
from numpy.typing import NDArray

from msdata_io._protocols.h5py import H5AttrsProtocol, H5DatasetProtocol, H5FileProtocol, H5Mode
from msdata_io._protocols.mgf import MGFParamsDict, MGFReaderProtocol, MGFSpectrumProtocol, MGFWriteSpectrum

# ---------------------------------------------------------------------------
# Type aliases for hooks
# ---------------------------------------------------------------------------

# HDF5 hooks
OpenH5Fn = Callable[[Path, H5Mode], H5FileProtocol]

# MGF hooks
OpenMgfFn = Callable[[Path], MGFReaderProtocol]
WriteMgfFn = Callable[[list[MGFWriteSpectrum], Path], None]


# ---------------------------------------------------------------------------
# Hooks container
# ---------------------------------------------------------------------------


class _HooksContainer:
    """Container for all hookable functions.

    Hooks are set to production implementations at module load time.
    Tests override hooks to use fakes.
    """

    # HDF5 hooks
    open_h5: OpenH5Fn

    # MGF hooks
    open_mgf: OpenMgfFn
    write_mgf: WriteMgfFn


hooks = _HooksContainer()


# ---------------------------------------------------------------------------
# Production implementations (wrappers that call real modules)
# ---------------------------------------------------------------------------


def _prod_open_h5(path: Path, mode: H5Mode) -> H5FileProtocol:
    """Production implementation: open HDF5 file via h5py."""
    from msdata_io._protocols.h5py import _open_h5

    return _open_h5(path, mode)


def _prod_open_mgf(path: Path) -> MGFReaderProtocol:
    """Production implementation: open MGF file via pyteomics."""
    from msdata_io._protocols.mgf import _open_mgf

    return _open_mgf(path)


def _prod_write_mgf(spectra: list[MGFWriteSpectrum], path: Path) -> None:
    """Production implementation: write MGF file via pyteomics."""
    from msdata_io._protocols.mgf import _write_mgf

    _write_mgf(spectra, path)


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


def _init_production_hooks() -> None:
    """Initialize hooks to production implementations.

    Called at module load time and by reset_hooks().
    """
    hooks.open_h5 = _prod_open_h5
    hooks.open_mgf = _prod_open_mgf
    hooks.write_mgf = _prod_write_mgf


def reset_hooks() -> None:
    """Reset all hooks to production implementations.

    Use in conftest.py autouse fixture for test isolation.
    """
    _init_production_hooks()


# Initialize hooks to production implementations at module load
_init_production_hooks()


# ---------------------------------------------------------------------------
# Fake implementations for tests
# ---------------------------------------------------------------------------


class FakeH5Attrs:
    """Fake h5py AttributeManager backed by a dict."""

    def __init__(self) -> None:
        self.values: dict[str, str | int] = {}

    def __setitem__(self, key: str, value: str | int) -> None:
        self.values[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self.values


class FakeH5Dataset:
    """Fake h5py Dataset holding a numpy array in memory."""

    def __init__(self, data: NDArray[np.generic], compression: str | None = None) -> None:
        self._data = data
        self._attrs = FakeH5Attrs()
        self.compression = compression

    @property
    def shape(self) -> tuple[int, ...]:
        """Return dataset dimensions."""
        return tuple(int(n) for n in self._data.shape)

    @property
    def dtype(self) -> np.dtype[np.generic]:
        """Return element type."""
        return self._data.dtype

    @property
    def attrs(self) -> H5AttrsProtocol:
        """Return dataset attributes."""
        return self._attrs

    def __getitem__(self, key: slice) -> NDArray[np.generic]:
        return self._data[key]

    def __len__(self) -> int:
        return int(self._data.shape[0])


class FakeH5File:
    """Fake h5py File holding datasets in a dict."""

    def __init__(self, datasets: dict[str, NDArray[np.generic]] | None = None) -> None:
        self.datasets: dict[str, FakeH5Dataset] = {}
        if datasets is not None:
            for name, data in datasets.items():
                self.datasets[name] = FakeH5Dataset(data)
        self._attrs = FakeH5Attrs()
        self.closed = False

    @property
    def attrs(self) -> H5AttrsProtocol:
        """Return file attributes."""
        return self._attrs

    def __getitem__(self, name: str) -> H5DatasetProtocol:
        if name not in self.datasets:
            raise KeyError(name)
        return self.datasets[name]

    def __contains__(self, name: str) -> bool:
        return name in self.datasets

    def create_dataset(
        self,
        name: str,
        *,
        data: NDArray[np.generic],
        compression: str | None,
        compression_opts: int | None,
    ) -> H5DatasetProtocol:
        """Store a copy of data under name."""
        dataset = FakeH5Dataset(np.array(data), compression)
        self.datasets[name] = dataset
        return dataset

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> H5FileProtocol:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""
        self.close()


class FakeH5Store:
    """In-memory filesystem of FakeH5File objects keyed by path.

    Assign ``hooks.open_h5 = store.open``. Mode "w" replaces any existing
    file; mode "r" returns the stored file or raises FileNotFoundError.
    """

    def __init__(self) -> None:
        self.files: dict[Path, FakeH5File] = {}

    def open(self, path: Path, mode: H5Mode) -> H5FileProtocol:
        if mode == "w":
            handle = FakeH5File()
            self.files[path] = handle
            path.touch()
            return handle
        stored = self.files.get(path)
        if stored is None:
            raise FileNotFoundError(str(path))
        stored.closed = False
        return stored


class FakeMGFSpectrum:
    """Fake pyteomics MGF spectrum dict."""

    def __init__(
        self,
        params: MGFParamsDict,
        mz: list[float],
        intensities: list[float],
    ) -> None:
        self._params = params
        self._mz = np.array(mz, dtype=np.float64)
        self._intensities = np.array(intensities, dtype=np.float64)

    def __getitem__(self, key: str) -> NDArray[np.float64] | MGFParamsDict:
        if key == "m/z array":
            return self._mz
        if key == "intensity array":
            return self._intensities
        if key == "params":
            return self._params
        raise KeyError(key)

    def __contains__(self, key: str) -> bool:
        return key in ("m/z array", "intensity array", "params")


class FakeMGFReader:
    """Fake pyteomics MGF reader over a list of spectra."""

    def __init__(self, spectra: list[FakeMGFSpectrum]) -> None:
        self._spectra = spectra

    def __iter__(self) -> Generator[MGFSpectrumProtocol, None, None]:
        yield from self._spectra

    def __enter__(self) -> MGFReaderProtocol:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""
        pass


class FakeMGFSink:
    """Captures spectra passed to hooks.write_mgf."""

    def __init__(self) -> None:
        self.written: list[MGFWriteSpectrum] = []
        self.paths: list[Path] = []

    def write(self, spectra: list[MGFWriteSpectrum], path: Path) -> None:
        self.written.extend(spectra)
        self.paths.append(path)


class FakePeakPicker:
    """Peak picker that keeps points at or above a threshold."""

    def __init__(self, threshold: float) -> None:
        self._threshold = threshold
        self.calls = 0

    def pick(
        self,
        axis: NDArray[np.float64],
        values: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        self.calls += 1
        keep = values >= self._threshold
        return axis[keep], values[keep]


__all__ = [
    "FakeH5Attrs",
    "FakeH5Dataset",
    "FakeH5File",
    "FakeH5Store",
    "FakeMGFReader",
    "FakeMGFSink",
    "FakeMGFSpectrum",
    "FakePeakPicker",
    "hooks",
    "reset_hooks",
]
