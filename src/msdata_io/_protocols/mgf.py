"""Protocol definitions for pyteomics.mgf library.

Provides type-safe interfaces to the pyteomics MGF reader and writer
without importing pyteomics directly.
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from pathlib import Path
from types import TracebackType
from typing import Literal, Protocol, TypedDict, overload

import numpy as np
from numpy.typing import NDArray

# Type alias for MGF params dict
MGFParamsDict = dict[str, str | float | int | list[int] | tuple[float | None, ...] | None]


class MGFSpectrumProtocol(Protocol):
    """Protocol for pyteomics MGF spectrum dictionary.

    pyteomics MGF returns dicts with keys:
    - 'm/z array': numpy array of m/z values (1D)
    - 'intensity array': numpy array of intensities (1D)
    - 'params': dict of spectrum parameters (title, pepmass, charge, etc.)
    """

    @overload
    def __getitem__(self, key: Literal["m/z array"]) -> NDArray[np.float64]: ...
    @overload
    def __getitem__(self, key: Literal["intensity array"]) -> NDArray[np.float64]: ...
    @overload
    def __getitem__(self, key: Literal["params"]) -> MGFParamsDict: ...

    def __getitem__(self, key: str) -> NDArray[np.float64] | MGFParamsDict:
        """Get value by key."""
        ...

    def __contains__(self, key: str) -> bool:
        """Check if key exists."""
        ...


class MGFReaderProtocol(Protocol):
    """Protocol for pyteomics.mgf.MGF reader.

    Supports both iteration and context manager protocol.
    Iteration yields MGFSpectrumProtocol dicts.
    """

    def __iter__(self) -> Generator[MGFSpectrumProtocol, None, None]:
        """Iterate over all spectra."""
        ...

    def __enter__(self) -> MGFReaderProtocol:
        """Enter context manager."""
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""
        ...


class MGFWriteSpectrum(TypedDict):
    """Spectrum dict in the shape pyteomics.mgf.write accepts."""

    params: MGFParamsDict
    m_z_array: NDArray[np.float64]
    intensity_array: NDArray[np.float64]


class _MGFWriteFn(Protocol):
    def __call__(self, spectra: Iterable[dict[str, object]], output: str, *, file_mode: str) -> None: ...


def _open_mgf(path: Path) -> MGFReaderProtocol:
    """Open MGF file via pyteomics with strict typing.

    Args:
        path: Path to .mgf file.

    Returns:
        MGFReaderProtocol for iterating over spectra.

    Raises:
        FileNotFoundError: If file does not exist.
        Exception: If pyteomics fails to open the file.
    """
    mod = __import__("pyteomics.mgf", fromlist=["MGF"])
    reader: MGFReaderProtocol = mod.MGF(str(path))
    return reader


def _write_mgf(spectra: list[MGFWriteSpectrum], path: Path) -> None:
    """Write spectra to an MGF file via pyteomics.

    pyteomics expects the array keys with their conventional names, so the
    TypedDict fields are renamed here.

    Args:
        spectra: Spectra to write.
        path: Output .mgf path.
    """
    mod = __import__("pyteomics.mgf", fromlist=["write"])
    write_fn: _MGFWriteFn = mod.write
    payload: list[dict[str, object]] = [
        {
            "params": spec["params"],
            "m/z array": spec["m_z_array"],
            "intensity array": spec["intensity_array"],
        }
        for spec in spectra
    ]
    write_fn(payload, str(path), file_mode="w")


__all__ = [
    "MGFParamsDict",
    "MGFReaderProtocol",
    "MGFSpectrumProtocol",
    "MGFWriteSpectrum",
    "_open_mgf",
    "_write_mgf",
]
