"""Protocol definitions for the h5py library.

Provides type-safe interfaces to HDF5 files and datasets without
importing h5py at module load time. h5py is an optional dependency used
only by the mzMLb reader and writer.
"""

from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import Literal, Protocol

import numpy as np
from numpy.typing import NDArray

H5Mode = Literal["r", "w"]


class H5AttrsProtocol(Protocol):
    """Protocol for h5py AttributeManager."""

    def __setitem__(self, key: str, value: str | int) -> None: ...

    def __contains__(self, key: str) -> bool: ...


class H5DatasetProtocol(Protocol):
    """Protocol for h5py.Dataset.

    Slicing reads the selected range into a numpy array.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Return dataset dimensions."""
        ...

    @property
    def dtype(self) -> np.dtype[np.generic]:
        """Return the dataset's element type."""
        ...

    @property
    def attrs(self) -> H5AttrsProtocol:
        """Return dataset attributes."""
        ...

    def __getitem__(self, key: slice) -> NDArray[np.generic]:
        """Read a slice of the dataset."""
        ...

    def __len__(self) -> int:
        """Return length of first dimension."""
        ...


class H5FileProtocol(Protocol):
    """Protocol for h5py.File.

    Supports dataset lookup, creation and the context manager protocol.
    """

    @property
    def attrs(self) -> H5AttrsProtocol:
        """Return file attributes."""
        ...

    def __getitem__(self, name: str) -> H5DatasetProtocol:
        """Look up a dataset by name."""
        ...

    def __contains__(self, name: str) -> bool:
        """Check if a dataset exists."""
        ...

    def create_dataset(
        self,
        name: str,
        *,
        data: NDArray[np.generic],
        compression: str | None,
        compression_opts: int | None,
    ) -> H5DatasetProtocol:
        """Create a dataset initialised with data."""
        ...

    def close(self) -> None:
        """Close the file."""
        ...

    def __enter__(self) -> H5FileProtocol:
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


def _open_h5(path: Path, mode: H5Mode) -> H5FileProtocol:
    """Open an HDF5 file via h5py with strict typing.

    Args:
        path: Path to the HDF5 file.
        mode: "r" to read, "w" to create or truncate.

    Returns:
        H5FileProtocol for the open file.

    Raises:
        ModuleNotFoundError: If h5py is not installed.
        OSError: If h5py cannot open the file.
    """
    mod = __import__("h5py", fromlist=["File"])
    handle: H5FileProtocol = mod.File(str(path), mode)
    return handle


__all__ = [
    "H5AttrsProtocol",
    "H5DatasetProtocol",
    "H5FileProtocol",
    "H5Mode",
    "_open_h5",
]
