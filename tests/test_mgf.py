"""Tests for MGF reading and writing."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from msdata_io._decoders.mgf import (
    PEAK_INTENSITY,
    _decode_charge_value,
    _decode_mgf_title,
    _decode_mgf_user_params,
    _decode_pepmass,
    _decode_rt_seconds,
)
from msdata_io._exceptions import MGFReadError, RecordSyntaxError, UnknownRecordError, WriterError
from msdata_io.readers.mgf import MGFReader
from msdata_io.record import (
    CHARGE_STATE,
    SELECTED_ION_MZ,
    make_array,
    make_cv_param,
    make_record,
    ms_level,
    param_map,
    precursor_mz,
    scan_start_time,
)
from msdata_io.testing import FakeMGFReader, FakeMGFSink, FakeMGFSpectrum, hooks, reset_hooks
from msdata_io.types.record import Precursor, Record
from msdata_io.writers.mgf import write_mgf


def _mgf_path(tmp_path: Path) -> Path:
    path = tmp_path / "peaks.mgf"
    path.touch()
    return path


def _install(spectra: list[FakeMGFSpectrum]) -> None:
    def _open(path: Path) -> FakeMGFReader:
        return FakeMGFReader(spectra)

    hooks.open_mgf = _open


def _two_spectra() -> list[FakeMGFSpectrum]:
    return [
        FakeMGFSpectrum(
            {"title": "spec1", "pepmass": (445.3, 1200.0), "charge": [2], "rtinseconds": 61.5, "scans": "17"},
            [120.1, 230.2, 340.3],
            [5.0, 50.0, 500.0],
        ),
        FakeMGFSpectrum({"pepmass": (512.7, None)}, [150.0], [9.0]),
    ]


class TestDecoders:
    """Tests for the MGF params decoders."""

    def test_title(self) -> None:
        """Test a missing title falls back to the position."""
        assert _decode_mgf_title({"title": "abc"}, 0) == "abc"
        assert _decode_mgf_title({}, 4) == "index=4"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ((445.3,), (445.3, None)),
            ((445.3, 10.0), (445.3, 10.0)),
            (445.3, (445.3, None)),
            ("445.3 10", (445.3, 10.0)),
            (None, None),
        ],
    )
    def test_pepmass(self, raw: tuple[float, ...] | float | str | None, expected: tuple[float, float | None] | None) -> None:
        """Test pepmass shapes pyteomics can return."""
        assert _decode_pepmass(raw, "spec") == expected

    def test_pepmass_invalid(self) -> None:
        """Test unusable pepmass values raise RecordSyntaxError."""
        with pytest.raises(RecordSyntaxError):
            _decode_pepmass("abc", "spec")
        with pytest.raises(RecordSyntaxError):
            _decode_pepmass((None,), "spec")

    def test_charge(self) -> None:
        """Test charge in its various spellings."""
        assert _decode_charge_value([3]) == 3
        assert _decode_charge_value(2) == 2
        assert _decode_charge_value("2+") == 2
        assert _decode_charge_value("2-") == -2
        assert _decode_charge_value("x") is None

    def test_rt_seconds(self) -> None:
        """Test RTINSECONDS parsing."""
        assert _decode_rt_seconds({"rtinseconds": "12.5"}) == 12.5
        assert _decode_rt_seconds({"rtinseconds": "n/a"}) is None
        assert _decode_rt_seconds({}) is None

    def test_user_params(self) -> None:
        """Test unmapped params become uppercased user params."""
        params = _decode_mgf_user_params({"title": "t", "scans": "17", "seq": "PEPTIDE"})
        assert [(p["name"], p["value"]) for p in params] == [("SCANS", "17"), ("SEQ", "PEPTIDE")]


class TestMGFReader:
    """Tests for MGFReader."""

    def test_rejects_non_mgf(self, tmp_path: Path) -> None:
        """Test other files are refused up front."""
        other = tmp_path / "peaks.txt"
        other.touch()
        with pytest.raises(MGFReadError, match="Not an MGF file"):
            MGFReader(other)
        assert MGFReader.supports_format(other) is False

    def test_records(self, tmp_path: Path) -> None:
        """Test spectra map onto MS2 records."""
        _install(_two_spectra())
        with MGFReader(_mgf_path(tmp_path)) as reader:
            first, second = reader.iter_spectra()
            assert list(reader.iter_chromatograms()) == []
        assert first["id"] == "spec1"
        assert second["id"] == "index=1"
        assert ms_level(first) == 2
        assert precursor_mz(first) == 445.3
        ion = first["precursors"][0]["selected_ions"][0]
        assert ion[CHARGE_STATE]["value"] == 2
        assert ion[PEAK_INTENSITY]["value"] == 1200.0
        assert scan_start_time(first) == 61.5
        assert first["user_params"][0]["name"] == "SCANS"
        assert first["arrays"]["m/z array"]["values"].tolist() == [120.1, 230.2, 340.3]
        assert second["precursors"][0]["selected_ions"][0][SELECTED_ION_MZ]["value"] == 512.7

    def test_random_access(self, tmp_path: Path) -> None:
        """Test title and position lookups."""
        _install(_two_spectra())
        reader = MGFReader(_mgf_path(tmp_path))
        assert reader.get_by_id("spec1")["index"] == 0
        assert reader.get_by_index(1)["id"] == "index=1"
        assert reader.count_spectra() == 2
        with pytest.raises(UnknownRecordError):
            reader.get_by_id("missing")
        with pytest.raises(UnknownRecordError):
            reader.get_by_index(5)

    def test_repeated_lookups_do_not_repeat_diagnostics(self, tmp_path: Path) -> None:
        """Test lookups that re-read the file report each bad spectrum once."""
        spectra = [FakeMGFSpectrum({"title": "bad", "pepmass": "abc"}, [1.0], [1.0]), *_two_spectra()]
        _install(spectra)
        reader = MGFReader(_mgf_path(tmp_path), policy="skip")
        assert reader.get_by_id("spec1")["index"] == 1
        assert reader.get_by_id("spec1")["index"] == 1
        assert reader.get_by_index(2)["id"] == "index=2"
        assert reader.count_spectra() == 2
        assert [d["record_id"] for d in reader.diagnostics] == ["bad"]

    def test_bad_pepmass_skipped(self, tmp_path: Path) -> None:
        """Test an unusable spectrum is skipped with a diagnostic."""
        spectra = [FakeMGFSpectrum({"title": "bad", "pepmass": "abc"}, [1.0], [1.0]), *_two_spectra()]
        _install(spectra)
        reader = MGFReader(_mgf_path(tmp_path), policy="skip")
        assert [r["id"] for r in reader] == ["spec1", "index=2"]
        (diagnostic,) = reader.diagnostics
        assert diagnostic["record_id"] == "bad"
        assert diagnostic["offset"] is None
        assert diagnostic["error_type"] == "RecordSyntaxError"

    def test_bad_pepmass_raise(self, tmp_path: Path) -> None:
        """Test the raise policy propagates the error."""
        _install([FakeMGFSpectrum({"title": "bad", "pepmass": "abc"}, [1.0], [1.0])])
        with pytest.raises(RecordSyntaxError):
            list(MGFReader(_mgf_path(tmp_path), policy="raise").iter_spectra())

    def test_length_mismatch_skipped(self, tmp_path: Path) -> None:
        """Test m/z and intensity arrays of different lengths are rejected."""
        _install([FakeMGFSpectrum({"title": "short"}, [1.0, 2.0], [1.0])])
        reader = MGFReader(_mgf_path(tmp_path), policy="skip")
        assert list(reader.iter_spectra()) == []
        assert reader.diagnostics[0]["error_type"] == "RecordInvariantError"

    def test_open_failure(self, tmp_path: Path) -> None:
        """Test pyteomics errors surface as MGFReadError."""

        def _fail(path: Path) -> FakeMGFReader:
            raise OSError("disk gone")

        hooks.open_mgf = _fail
        with pytest.raises(MGFReadError, match="disk gone"):
            list(MGFReader(_mgf_path(tmp_path)).iter_spectra())


class TestWriteMgf:
    """Tests for write_mgf."""

    def test_write(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test records convert to pyteomics spectrum dicts."""
        sink = FakeMGFSink()
        hooks.write_mgf = sink.write
        out = tmp_path / "out" / "peaks.mgf"
        assert write_mgf(sample_spectra, out) == 3
        assert sink.paths == [out]
        first = sink.written[0]
        assert first["params"]["title"] == "scan=1"
        assert first["params"]["rtinseconds"] == 1.5
        assert "pepmass" not in first["params"]
        assert first["m_z_array"].tolist() == [100.0, 200.5, 300.25]

    def test_read_records_write_back(self, tmp_path: Path) -> None:
        """Test precursor, charge and user params are written back."""
        _install(_two_spectra())
        records = list(MGFReader(_mgf_path(tmp_path)).iter_spectra())
        sink = FakeMGFSink()
        hooks.write_mgf = sink.write
        write_mgf(records, tmp_path / "copy.mgf")
        params = sink.written[0]["params"]
        assert params["pepmass"] == (445.3, 1200.0)
        assert params["charge"] == [2]
        assert params["scans"] == "17"
        assert sink.written[1]["params"]["pepmass"] == (512.7, None)

    def test_precursor_ion_found_past_empty_precursor(self, tmp_path: Path) -> None:
        """Test the first precursor may carry no selected ions."""
        ion = param_map(
            make_cv_param(SELECTED_ION_MZ, "selected ion m/z", 612.8, "MS:1000040"),
            make_cv_param(CHARGE_STATE, "charge state", 3),
        )
        record = make_record(
            "spectrum",
            "scan=9",
            0,
            arrays={
                "m/z array": make_array("m/z array", [100.0]),
                "intensity array": make_array("intensity array", [4.0]),
            },
            precursors=[
                Precursor(spectrum_ref=None, isolation_window={}, selected_ions=[], activation={}),
                Precursor(spectrum_ref="scan=8", isolation_window={}, selected_ions=[ion], activation={}),
            ],
        )
        sink = FakeMGFSink()
        hooks.write_mgf = sink.write
        assert write_mgf([record], tmp_path / "out.mgf") == 1
        params = sink.written[0]["params"]
        assert params["pepmass"] == (612.8, None)
        assert params["charge"] == [3]

    def test_chromatogram_rejected(self, tmp_path: Path) -> None:
        """Test MGF cannot hold chromatograms."""
        sink = FakeMGFSink()
        hooks.write_mgf = sink.write
        tic = make_record(
            "chromatogram",
            "TIC",
            0,
            arrays={
                "time array": make_array("time array", [0.0]),
                "intensity array": make_array("intensity array", [1.0]),
            },
        )
        with pytest.raises(WriterError, match="spectra only"):
            write_mgf([tic], tmp_path / "out.mgf")
        assert sink.written == []

    def test_missing_arrays(self, tmp_path: Path) -> None:
        """Test spectra need m/z and intensity arrays."""
        record = make_record("spectrum", "s", 0, arrays={"m/z array": make_array("m/z array", np.zeros(2))})
        with pytest.raises(WriterError, match="lacks"):
            write_mgf([record], tmp_path / "out.mgf")


@pytest.mark.integration
class TestMgfWithPyteomics:
    """Round trip through pyteomics."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test a written file reads back through pyteomics."""
        pytest.importorskip("pyteomics")
        _install(_two_spectra())
        records = list(MGFReader(_mgf_path(tmp_path)).iter_spectra())
        reset_hooks()
        out = tmp_path / "round.mgf"
        write_mgf(records, out)
        read_back = list(MGFReader(out).iter_spectra())
        assert [r["id"] for r in read_back] == ["spec1", "index=1"]
        assert precursor_mz(read_back[0]) == pytest.approx(445.3)
