"""MGF (Mascot Generic Format) file reader implementation.

Provides Records from MS/MS peak lists via pyteomics. Uses Protocol-based
dynamic imports through hooks.open_mgf.

MGF has no byte-offset index and no chromatograms: random access walks
the file from the start, and iter_chromatograms yields nothing.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from types import TracebackType

from msdata_io._decoders.mgf import (
    _decode_mgf_precursor,
    _decode_mgf_scans,
    _decode_mgf_title,
    _decode_mgf_user_params,
)
from msdata_io._exceptions import CodecError, MGFReadError, RecordScopedError, UnknownRecordError
from msdata_io._protocols.mgf import MGFSpectrumProtocol
from msdata_io.config import load_settings
from msdata_io.logging import get_logger
from msdata_io.record import CENTROID_SPECTRUM, MS_LEVEL, make_array, make_cv_param, make_record, param_map
from msdata_io.testing import hooks
from msdata_io.types.common import ErrorPolicy, RecordKind
from msdata_io.types.record import Record, RecordDiagnostic

_logger = get_logger(__name__)


def _is_mgf_file(path: Path) -> bool:
    """Check if path is an MGF file."""
    return path.is_file() and path.suffix.lower() == ".mgf"


def _spectrum_to_record(spectrum: MGFSpectrumProtocol, index: int) -> Record:
    """Convert pyteomics MGF spectrum dict to a Record.

    Args:
        spectrum: Spectrum dictionary from pyteomics.
        index: 0-based index of spectrum in file.

    Returns:
        Record TypedDict of kind "spectrum".

    Raises:
        RecordSyntaxError: If PEPMASS is unusable.
        RecordInvariantError: If the m/z and intensity arrays differ in length.
    """
    params = spectrum["params"]
    record_id = _decode_mgf_title(params, index)
    arrays = {
        "m/z array": make_array("m/z array", spectrum["m/z array"]),
        "intensity array": make_array("intensity array", spectrum["intensity array"]),
    }
    return make_record(
        "spectrum",
        record_id,
        index,
        arrays=arrays,
        params=param_map(
            make_cv_param(MS_LEVEL, "ms level", 2),
            make_cv_param(CENTROID_SPECTRUM, "centroid spectrum"),
        ),
        user_params=_decode_mgf_user_params(params),
        scans=_decode_mgf_scans(params),
        precursors=_decode_mgf_precursor(params, record_id),
    )


class MGFReader:
    """Reader for MGF peak list files.

    Args:
        path: Path to the .mgf file.
        policy: "skip" or "raise" for spectra that cannot be mapped.
            Defaults to MSDATA_IO_ERROR_POLICY.

    Raises:
        MGFReadError: If path is not an MGF file.
    """

    def __init__(self, path: Path | str, *, policy: ErrorPolicy | None = None) -> None:
        self._path = Path(path)
        if not _is_mgf_file(self._path):
            raise MGFReadError(str(self._path), "Not an MGF file")
        self._policy: ErrorPolicy = policy if policy is not None else load_settings()["error_policy"]
        self._diagnostics: list[RecordDiagnostic] = []

    @property
    def source(self) -> str:
        return str(self._path)

    @staticmethod
    def supports_format(path: Path) -> bool:
        """Check if path is an MGF file."""
        return _is_mgf_file(path)

    def _skip(self, index: int, error: RecordScopedError | CodecError) -> None:
        record_id = error.record_id if isinstance(error, RecordScopedError) else f"index={index}"
        # Lookups re-read the file, so the same bad spectrum comes round again.
        if any(d["record_id"] == record_id and d["message"] == str(error) for d in self._diagnostics):
            return
        self._diagnostics.append(
            RecordDiagnostic(
                record_id=record_id,
                kind="spectrum",
                offset=None,
                error_type=type(error).__name__,
                message=str(error),
                skipped=True,
            )
        )
        _logger.warning(
            "skipping spectrum: %s",
            error,
            extra={"source": str(self._path), "record_id": record_id, "error_type": type(error).__name__},
        )

    def iter_spectra(self) -> Generator[Record, None, None]:
        """Iterate over all spectra in file order.

        Yields:
            Record TypedDict for each spectrum.

        Raises:
            MGFReadError: If pyteomics cannot read the file.
        """
        try:
            reader = hooks.open_mgf(self._path)
            with reader:
                for index, spectrum in enumerate(reader):
                    try:
                        record = _spectrum_to_record(spectrum, index)
                    except (RecordScopedError, CodecError) as e:
                        if self._policy == "raise":
                            raise
                        self._skip(index, e)
                        continue
                    yield record
        except (OSError, ValueError) as e:
            raise MGFReadError(str(self._path), f"Failed to read MGF: {e}") from e

    def __iter__(self) -> Generator[Record, None, None]:
        return self.iter_spectra()

    def iter_records(self) -> Generator[Record, None, None]:
        return self.iter_spectra()

    def iter_chromatograms(self) -> Generator[Record, None, None]:
        yield from ()

    @property
    def diagnostics(self) -> list[RecordDiagnostic]:
        return list(self._diagnostics)

    def get_by_id(self, identifier: str, kind: RecordKind = "spectrum") -> Record:
        """Read one spectrum by title.

        Raises:
            UnknownRecordError: If no spectrum carries the title.
        """
        if kind == "spectrum":
            for record in self.iter_spectra():
                if record["id"] == identifier:
                    return record
        raise UnknownRecordError(identifier, kind)

    def get_by_index(self, position: int, kind: RecordKind = "spectrum") -> Record:
        """Read one spectrum by 0-based position in the file.

        Raises:
            UnknownRecordError: If position is out of range.
        """
        if kind == "spectrum" and position >= 0:
            for record in self.iter_spectra():
                if record["index"] == position:
                    return record
        raise UnknownRecordError(f"#{position}", kind)

    def count_spectra(self) -> int:
        count = 0
        for _ in self.iter_spectra():
            count += 1
        return count

    def close(self) -> None:
        pass

    def __enter__(self) -> MGFReader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = [
    "MGFReader",
]
