"""Tests for MzMLReader."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import pytest

from msdata_io import _test_hooks
from msdata_io._exceptions import IndexUnavailableError, RecordInvariantError, UnknownRecordError
from msdata_io.readers.mzml import MzMLReader, _is_mzml_file
from msdata_io.record import SELECTED_ION_MZ, make_array, make_cv_param, make_record, param_map, record_equal
from msdata_io.types.record import Precursor, Record
from msdata_io.writers.mzml import MzMLWriter


class _NonSeekable(io.BytesIO):
    """Byte stream that refuses to seek."""

    def seekable(self) -> bool:
        return False


def _five_five_four(path: Path) -> Path:
    five = [1.0, 2.0, 3.0, 4.0, 5.0]
    records = [
        make_record(
            "spectrum",
            f"scan={i + 1}",
            i,
            arrays={"m/z array": make_array("m/z array", five), "intensity array": make_array("intensity array", five)},
        )
        for i in range(3)
    ]
    # Bypass make_record validation to put a broken record on disk.
    records[2]["arrays"]["intensity array"] = make_array("intensity array", five[:4])
    with MzMLWriter(path, index_mode="embedded") as writer:
        writer.write_all(records)
    return path


class TestIsMzmlFile:
    """Tests for _is_mzml_file function."""

    def test_returns_true_for_mzml(self, indexed_mzml: Path) -> None:
        """Test returns True for .mzML file."""
        assert _is_mzml_file(indexed_mzml) is True
        assert MzMLReader.supports_format(indexed_mzml) is True

    def test_returns_false_for_other_suffix(self, tmp_path: Path) -> None:
        """Test returns False for non-.mzML file."""
        other = tmp_path / "sample.mgf"
        other.write_text("BEGIN IONS\nEND IONS\n", encoding="utf-8")
        assert _is_mzml_file(other) is False

    def test_returns_false_for_nonexistent(self, tmp_path: Path) -> None:
        """Test returns False for nonexistent file."""
        assert _is_mzml_file(tmp_path / "missing.mzML") is False


class TestSequentialReading:
    """Tests for iter_spectra and friends."""

    def test_three_spectrum_scenario(self, indexed_mzml: Path) -> None:
        """Test zlib and base64 arrays decode with verified checksums."""
        with MzMLReader(indexed_mzml) as reader:
            spectra = list(reader.iter_spectra())
        assert [s["id"] for s in spectra] == ["scan=1", "scan=2", "scan=3"]
        mz = spectra[0]["arrays"]["m/z array"]
        assert mz["values"].tolist() == [100.0, 200.5, 300.25]
        assert mz["descriptor"]["compression"] == "zlib"
        assert mz["descriptor"]["encoding"] == "base64"
        assert mz["verified"] is True
        assert all(a["verified"] is True for s in spectra for a in s["arrays"].values())
        assert reader.diagnostics == []

    def test_iter_is_records(self, indexed_mzml: Path) -> None:
        """Test iterating the reader yields every record."""
        reader = MzMLReader(indexed_mzml)
        assert len(list(reader)) == 3
        assert list(reader.iter_chromatograms()) == []

    def test_skips_inconsistent_record(self, tmp_path: Path) -> None:
        """Test the 5/5, 5/5, 5/4 scenario through the reader."""
        path = _five_five_four(tmp_path / "bad.mzML")
        reader = MzMLReader(path, policy="skip")
        assert [r["id"] for r in reader.iter_spectra()] == ["scan=1", "scan=2"]
        assert [d["record_id"] for d in reader.diagnostics] == ["scan=3"]

    def test_raise_policy_from_environment(self, tmp_path: Path) -> None:
        """Test MSDATA_IO_ERROR_POLICY selects the raise policy."""
        path = _five_five_four(tmp_path / "bad.mzML")
        env = {"MSDATA_IO_ERROR_POLICY": "raise"}
        _test_hooks.get_env = env.get
        with pytest.raises(RecordInvariantError):
            list(MzMLReader(path).iter_spectra())

    def test_corrupted_checksum_flags_only_that_array(self, indexed_mzml: Path) -> None:
        """Test a damaged checksum keeps every record and flags one array."""
        original = list(MzMLReader(indexed_mzml).iter_spectra())
        checksum = original[1]["arrays"]["m/z array"]["checksum"]
        assert checksum is not None
        data = indexed_mzml.read_bytes()
        indexed_mzml.write_bytes(data.replace(checksum.encode("ascii"), b"sha1:" + b"0" * 40, 1))

        reader = MzMLReader(indexed_mzml)
        spectra = list(reader.iter_spectra())
        assert len(spectra) == 3
        assert spectra[1]["arrays"]["m/z array"]["verified"] is False
        assert spectra[1]["arrays"]["intensity array"]["verified"] is True
        assert spectra[0]["arrays"]["m/z array"]["verified"] is True
        assert [(d["record_id"], d["skipped"]) for d in reader.diagnostics] == [("scan=2", False)]

    def test_stream_source(self, indexed_mzml: Path) -> None:
        """Test readers accept open binary streams."""
        with indexed_mzml.open("rb") as handle:
            reader = MzMLReader(handle)
            assert len(list(reader.iter_spectra())) == 3
            assert reader.source == "<stream>"

    def test_closed_reader(self, indexed_mzml: Path) -> None:
        """Test a closed reader refuses further reads."""
        reader = MzMLReader(indexed_mzml)
        reader.close()
        with pytest.raises(ValueError, match="closed"):
            list(reader.iter_spectra())


class TestRandomAccess:
    """Tests for get_by_id and get_by_index."""

    def test_random_equals_sequential(self, indexed_mzml: Path) -> None:
        """Test every record read by id equals its sequential counterpart."""
        reader = MzMLReader(indexed_mzml)
        for record in reader.iter_spectra():
            assert record_equal(reader.get_by_id(record["id"]), record)
        assert reader.index.strategy == "embedded"

    def test_get_by_index(self, indexed_mzml: Path) -> None:
        """Test ordinal access follows document order."""
        reader = MzMLReader(indexed_mzml)
        assert reader.get_by_index(2)["id"] == "scan=3"
        with pytest.raises(UnknownRecordError):
            reader.get_by_index(3)

    def test_unknown_identifier(self, indexed_mzml: Path) -> None:
        """Test unknown ids raise UnknownRecordError."""
        with pytest.raises(UnknownRecordError) as exc_info:
            MzMLReader(indexed_mzml).get_by_id("scan=42")
        assert exc_info.value.identifier == "scan=42"

    def test_random_access_on_stream_keeps_cursor(self, indexed_mzml: Path) -> None:
        """Test positioned reads restore the stream position."""
        stream = io.BytesIO(indexed_mzml.read_bytes())
        stream.seek(5)
        reader = MzMLReader(stream)
        assert reader.get_by_id("scan=2")["id"] == "scan=2"
        assert stream.tell() == 5

    def test_non_seekable_stream(self, indexed_mzml: Path) -> None:
        """Test random access is unavailable on non-seekable streams."""
        data = indexed_mzml.read_bytes()
        assert len(list(MzMLReader(_NonSeekable(data)).iter_spectra())) == 3
        with pytest.raises(IndexUnavailableError):
            MzMLReader(_NonSeekable(data)).get_by_id("scan=1")

    def test_scan_index_for_plain_document(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test documents without an index are scanned once."""
        path = tmp_path / "plain.mzML"
        with MzMLWriter(path, index_mode="none") as writer:
            writer.write_all(sample_spectra)
        reader = MzMLReader(path)
        assert reader.get_by_id("scan=3")["index"] == 2
        assert reader.index.strategy == "scan"

    def test_chromatograms_and_precursors(self, tmp_path: Path) -> None:
        """Test chromatogram lookup and precursor resolution."""
        ms1 = make_record(
            "spectrum",
            "scan=1",
            0,
            arrays={"m/z array": make_array("m/z array", [445.3]), "intensity array": make_array("intensity array", [9.0])},
        )
        ion = param_map(make_cv_param(SELECTED_ION_MZ, "selected ion m/z", 445.3, "MS:1000040"))
        ms2 = make_record(
            "spectrum",
            "scan=2",
            1,
            arrays={"m/z array": make_array("m/z array", [120.1]), "intensity array": make_array("intensity array", [3.0])},
            precursors=[Precursor(spectrum_ref="scan=1", isolation_window={}, selected_ions=[ion], activation={})],
        )
        tic = make_record(
            "chromatogram",
            "TIC",
            0,
            arrays={
                "time array": make_array("time array", [0.0, 1.0]),
                "intensity array": make_array("intensity array", np.array([5.0, 6.0], dtype=np.float32)),
            },
        )
        path = tmp_path / "mixed.mzML"
        with MzMLWriter(path, index_mode="embedded") as writer:
            writer.write_all([ms1, ms2, tic])

        reader = MzMLReader(path)
        chromatogram = reader.get_chromatogram("TIC")
        assert chromatogram["arrays"]["intensity array"]["values"].dtype == np.float32
        assert reader.resolve_precursor(reader.get_by_id("scan=2")) is not None
        assert reader.resolve_precursor(ms1) is None
        assert reader.metadata["run_id"] == "run"
        assert reader.metadata["spectrum_count"] == 2
