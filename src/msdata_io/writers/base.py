"""Protocol definitions for writer interfaces.

Defines the typed contracts that writer implementations must fulfill.
No recovery, no best-effort - failures propagate as exceptions.
"""

from __future__ import annotations

from collections.abc import Iterable
from types import TracebackType
from typing import Protocol

from msdata_io.types.codec import CodecDescriptor
from msdata_io.types.record import Record


class RecordWriterProtocol(Protocol):
    """Protocol for writers that persist Records incrementally.

    Records are written in the order presented. Output becomes visible at
    its final path only after close() succeeds.
    """

    def write_spectrum(
        self,
        record: Record,
        descriptors: dict[str, CodecDescriptor] | None = None,
    ) -> None:
        """Append one spectrum.

        Args:
            record: Spectrum record.
            descriptors: Per-role codec overrides for this record.

        Raises:
            WriterError: If writing fails or a chromatogram was already
                written.
        """
        ...

    def write_chromatogram(
        self,
        record: Record,
        descriptors: dict[str, CodecDescriptor] | None = None,
    ) -> None:
        """Append one chromatogram.

        Raises:
            WriterError: If writing fails.
        """
        ...

    def write_all(self, records: Iterable[Record]) -> None:
        """Append records, dispatching on their kind."""
        ...

    def close(self) -> None:
        """Finalize the output.

        Raises:
            WriterError: If finalization fails.
        """
        ...

    def __enter__(self) -> RecordWriterProtocol:
        """Enter context manager."""
        ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, finalizing on success."""
        ...


__all__ = [
    "RecordWriterProtocol",
]
