"""Protocol definitions for reader interfaces.

Defines the typed contracts that reader implementations must fulfill.
Document-scoped failures propagate as exceptions; record-scoped failures
follow the reader's error policy.
"""

from __future__ import annotations

from collections.abc import Generator
from types import TracebackType
from typing import Protocol

from msdata_io.types.common import RecordKind
from msdata_io.types.record import Record, RecordDiagnostic


class RecordReaderProtocol(Protocol):
    """Protocol for readers that yield Records.

    Sequential methods stream records in document order. Random-access
    methods locate one record through an offset index.
    """

    def iter_spectra(self) -> Generator[Record, None, None]:
        """Iterate over spectra in document order.

        Raises:
            MalformedDocumentError: If the document grammar breaks.
        """
        ...

    def iter_chromatograms(self) -> Generator[Record, None, None]:
        """Iterate over chromatograms in document order."""
        ...

    def get_by_id(self, identifier: str, kind: RecordKind = "spectrum") -> Record:
        """Read one record by identifier.

        Raises:
            UnknownRecordError: If identifier is not in the index.
            IndexUnavailableError: If the source cannot be read randomly.
        """
        ...

    def get_by_index(self, position: int, kind: RecordKind = "spectrum") -> Record:
        """Read one record by ordinal position."""
        ...

    @property
    def diagnostics(self) -> list[RecordDiagnostic]:
        """Records skipped or degraded so far."""
        ...

    def close(self) -> None:
        """Release resources held by the reader."""
        ...

    def __enter__(self) -> RecordReaderProtocol:
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


class RandomAccessReaderProtocol(Protocol):
    """Minimal random-access surface used by parallel dispatch."""

    def get_by_id(self, identifier: str, kind: RecordKind = "spectrum") -> Record:
        """Read one record by identifier."""
        ...


__all__ = [
    "RandomAccessReaderProtocol",
    "RecordReaderProtocol",
]
