"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from msdata_io import _test_hooks
from msdata_io.record import (
    MS_LEVEL,
    PROFILE_SPECTRUM,
    SCAN_START_TIME,
    UNIT_SECOND,
    make_array,
    make_cv_param,
    make_record,
    param_map,
)
from msdata_io.testing import reset_hooks
from msdata_io.types.record import Record, ScanEvent
from msdata_io.writers.mzml import MzMLWriter


@pytest.fixture(autouse=True)
def _reset_library_hooks() -> Generator[None, None, None]:
    """Restore production hooks after each test."""
    yield
    reset_hooks()


@pytest.fixture(autouse=True)
def _restore_config_hooks() -> Generator[None, None, None]:
    """Restore config hooks after each test."""
    original_get_env = _test_hooks.get_env
    yield
    _test_hooks.get_env = original_get_env


def _make_spectra() -> list[Record]:
    """Three MS1 spectra with distinct arrays and scan start times."""
    records: list[Record] = []
    for i in range(3):
        scan = ScanEvent(
            params=param_map(make_cv_param(SCAN_START_TIME, "scan start time", 1.5 * (i + 1), UNIT_SECOND)),
            instrument_configuration_ref=None,
            scan_windows=[],
        )
        records.append(
            make_record(
                "spectrum",
                f"scan={i + 1}",
                i,
                arrays={
                    "m/z array": make_array("m/z array", [100.0 + i, 200.5 + i, 300.25 + i], compression="zlib"),
                    "intensity array": make_array("intensity array", [10.0 * (i + 1), 20.0, 30.0], compression="zlib"),
                },
                params=param_map(
                    make_cv_param(MS_LEVEL, "ms level", 1),
                    make_cv_param(PROFILE_SPECTRUM, "profile spectrum"),
                ),
                scans=[scan],
            )
        )
    return records


def _write_indexed(tmp_path: Path) -> Path:
    """Write the three sample spectra as an indexedmzML document."""
    out = tmp_path / "sample.mzML"
    with MzMLWriter(out, index_mode="embedded") as writer:
        writer.write_all(_make_spectra())
    return out


sample_spectra = pytest.fixture(_make_spectra)
indexed_mzml = pytest.fixture(_write_indexed)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring optional backends",
    )
