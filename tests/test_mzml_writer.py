"""Tests for MzMLWriter."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pytest

from msdata_io._exceptions import WriterError
from msdata_io.index import build_index, scan_index, sidecar_path_for
from msdata_io.readers.mzml import MzMLReader
from msdata_io.record import make_array, make_record, record_equal
from msdata_io.types.codec import make_descriptor
from msdata_io.types.record import Precursor, Record
from msdata_io.writers.mzml import PARTIAL_SUFFIX, MzMLWriter


def _chromatogram(identifier: str = "TIC") -> Record:
    return make_record(
        "chromatogram",
        identifier,
        0,
        arrays={
            "time array": make_array("time array", [0.0, 1.0, 2.0]),
            "intensity array": make_array("intensity array", [5.0, 7.0, 6.0]),
        },
    )


def _partial(path: Path) -> Path:
    return path.with_name(path.name + PARTIAL_SUFFIX)


class TestPartialFiles:
    """Tests for the write-then-rename protocol."""

    def test_renamed_on_close(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test output appears under its final name only after close."""
        path = tmp_path / "out.mzML"
        writer = MzMLWriter(path, index_mode="embedded")
        writer.write_all(sample_spectra)
        assert _partial(path).exists()
        assert not path.exists()
        writer.close()
        assert path.exists()
        assert not _partial(path).exists()
        assert writer.path == path

    def test_abort_leaves_partial(self, tmp_path: Path, sample_spectra: list[Record], caplog: pytest.LogCaptureFixture) -> None:
        """Test abort never renames the partial file."""
        path = tmp_path / "out.mzML"
        writer = MzMLWriter(path)
        writer.write_spectrum(sample_spectra[0])
        with caplog.at_level(logging.WARNING):
            writer.abort()
        assert _partial(path).exists()
        assert not path.exists()
        assert "writer abandoned" in caplog.text

    def test_exception_in_context_aborts(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test an exception inside the with block abandons the output."""
        path = tmp_path / "out.mzML"
        with pytest.raises(RuntimeError), MzMLWriter(path) as writer:
            writer.write_spectrum(sample_spectra[0])
            raise RuntimeError("producer failed")
        assert _partial(path).exists()
        assert not path.exists()

    def test_close_is_idempotent(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test a second close is a no-op and later writes fail."""
        writer = MzMLWriter(tmp_path / "out.mzML")
        writer.write_all(sample_spectra)
        writer.close()
        writer.close()
        with pytest.raises(WriterError, match="closed"):
            writer.write_spectrum(sample_spectra[0])


class TestWriterErrors:
    """Tests for rejected writer calls."""

    def test_spectrum_after_chromatogram(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test spectra cannot follow chromatograms."""
        writer = MzMLWriter(tmp_path / "out.mzML")
        writer.write_spectrum(sample_spectra[0])
        writer.write_chromatogram(_chromatogram())
        with pytest.raises(WriterError, match="precede"):
            writer.write_spectrum(sample_spectra[1])
        writer.abort()

    def test_duplicate_id(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test a repeated id is rejected."""
        writer = MzMLWriter(tmp_path / "out.mzML")
        writer.write_spectrum(sample_spectra[0])
        with pytest.raises(WriterError, match="duplicate"):
            writer.write_spectrum(sample_spectra[0])
        writer.abort()

    def test_wrong_kind(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test write_chromatogram refuses a spectrum."""
        writer = MzMLWriter(tmp_path / "out.mzML")
        with pytest.raises(WriterError, match="not a chromatogram"):
            writer.write_chromatogram(sample_spectra[0])
        writer.abort()

    def test_declared_count_mismatch(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test close fails when fewer records arrive than declared."""
        path = tmp_path / "out.mzML"
        writer = MzMLWriter(path, spectrum_count=5)
        writer.write_all(sample_spectra)
        with pytest.raises(WriterError, match="declared 5"):
            writer.close()
        assert not path.exists()
        assert _partial(path).exists()

    def test_index_before_close(self, tmp_path: Path) -> None:
        """Test the index is only available after close."""
        writer = MzMLWriter(tmp_path / "out.mzML")
        with pytest.raises(WriterError, match="after close"):
            _ = writer.index
        writer.abort()

    def test_chromatogram_with_two_precursors(self, tmp_path: Path) -> None:
        """Test chromatograms carry at most one precursor."""
        record = _chromatogram()
        empty = Precursor(spectrum_ref=None, isolation_window={}, selected_ions=[], activation={})
        record["precursors"] = [empty, empty]
        writer = MzMLWriter(tmp_path / "out.mzML")
        with pytest.raises(WriterError, match="more than one"):
            writer.write_chromatogram(record)
        writer.abort()


class TestIndexModes:
    """Tests for the index persisted by each mode."""

    def test_embedded_index_matches_scan(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test writer offsets equal offsets found by scanning."""
        path = tmp_path / "out.mzML"
        with MzMLWriter(path, index_mode="embedded") as writer:
            writer.write_all(sample_spectra)
        with path.open("rb") as stream:
            scanned = scan_index(stream)
        assert [(e["id"], e["offset"]) for e in writer.index.entries()] == [
            (e["id"], e["offset"]) for e in scanned.entries()
        ]
        assert writer.index.strategy == "embedded"
        assert path.read_bytes().rstrip().endswith(b"</indexedmzML>")

    def test_both_writes_wrapper_and_sidecar(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test mode both produces the wrapper and the side-car."""
        path = tmp_path / "out.mzML"
        with MzMLWriter(path, index_mode="both") as writer:
            writer.write_all(sample_spectra)
        assert sidecar_path_for(path).exists()
        assert b"<indexedmzML" in path.read_bytes()

    def test_sidecar_mode(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test mode sidecar writes plain mzML and the side-car is used."""
        path = tmp_path / "out.mzML"
        with MzMLWriter(path, index_mode="sidecar") as writer:
            writer.write_all(sample_spectra)
        assert b"<indexedmzML" not in path.read_bytes()
        assert build_index(path).strategy == "sidecar"

    def test_none_mode(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test mode none leaves only plain mzML."""
        path = tmp_path / "out.mzML"
        with MzMLWriter(path, index_mode="none") as writer:
            writer.write_all(sample_spectra)
        assert not sidecar_path_for(path).exists()
        assert build_index(path).strategy == "scan"

    def test_counts_patched(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test undeclared list counts are filled in at close."""
        path = tmp_path / "out.mzML"
        with MzMLWriter(path) as writer:
            writer.write_all(sample_spectra)
            writer.write_chromatogram(_chromatogram())
        reader = MzMLReader(path)
        assert reader.metadata["spectrum_count"] == 3
        assert [r["id"] for r in reader.iter_chromatograms()] == ["TIC"]


class TestDescriptors:
    """Tests for codec descriptor precedence."""

    def test_default_and_override(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test per-call descriptors beat writer defaults, which beat the array."""
        path = tmp_path / "out.mzML"
        defaults = {
            "m/z array": make_descriptor(compression="none", dtype="float64"),
            "intensity array": make_descriptor(compression="none", dtype="float64"),
        }
        override = {"intensity array": make_descriptor(compression="zlib", dtype="float32")}
        with MzMLWriter(path, default_descriptors=defaults) as writer:
            writer.write_spectrum(sample_spectra[0], override)
            writer.write_spectrum(sample_spectra[1])

        first, second = MzMLReader(path).iter_spectra()
        assert first["arrays"]["m/z array"]["descriptor"]["compression"] == "none"
        assert first["arrays"]["intensity array"]["descriptor"]["compression"] == "zlib"
        assert first["arrays"]["intensity array"]["values"].dtype == np.float32
        assert second["arrays"]["intensity array"]["descriptor"]["compression"] == "none"
        assert second["arrays"]["intensity array"]["values"].dtype == np.float64

    def test_unencoded_descriptor_is_written_as_base64(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test mzML output always uses base64 text."""
        record = sample_spectra[0]
        mz = record["arrays"]["m/z array"]
        mz["descriptor"] = make_descriptor(compression="zlib", encoding="none")
        path = tmp_path / "out.mzML"
        with MzMLWriter(path) as writer:
            writer.write_spectrum(record)
        (spectrum,) = MzMLReader(path).iter_spectra()
        assert spectrum["arrays"]["m/z array"]["descriptor"]["encoding"] == "base64"


class TestRoundTrip:
    """Tests for write, read, write, read stability."""

    def test_second_generation_is_identical(self, tmp_path: Path, sample_spectra: list[Record]) -> None:
        """Test a read record survives another write unchanged."""
        first_path = tmp_path / "first.mzML"
        with MzMLWriter(first_path) as writer:
            writer.write_all(sample_spectra)
            writer.write_chromatogram(_chromatogram())
        first = list(MzMLReader(first_path))

        second_path = tmp_path / "second.mzML"
        with MzMLWriter(second_path) as writer:
            writer.write_all(first)
        second = list(MzMLReader(second_path))

        assert len(second) == len(first) == 4
        for a, b in zip(first, second, strict=True):
            assert record_equal(a, b)

    def test_values_survive(self, indexed_mzml: Path, sample_spectra: list[Record]) -> None:
        """Test values and scan times read back as written."""
        for written, read in zip(sample_spectra, MzMLReader(indexed_mzml).iter_spectra(), strict=True):
            for role, array in written["arrays"].items():
                assert np.array_equal(read["arrays"][role]["values"], array["values"])
            assert read["scans"][0]["params"] == written["scans"][0]["params"]

    def test_non_standard_role(self, tmp_path: Path) -> None:
        """Test arrays outside the vocabulary keep their role name."""
        record = make_record(
            "spectrum",
            "scan=1",
            0,
            arrays={
                "m/z array": make_array("m/z array", [1.0, 2.0]),
                "intensity array": make_array("intensity array", [3.0, 4.0]),
                "ion quality": make_array("ion quality", [0.5, 0.75]),
            },
        )
        path = tmp_path / "out.mzML"
        with MzMLWriter(path) as writer:
            writer.write_spectrum(record)
        (spectrum,) = MzMLReader(path).iter_spectra()
        assert spectrum["arrays"]["ion quality"]["values"].tolist() == [0.5, 0.75]

    def test_series_array(self, tmp_path: Path) -> None:
        """Test an array with its own length round-trips as a series."""
        record = make_record(
            "spectrum",
            "scan=1",
            0,
            arrays={
                "m/z array": make_array("m/z array", [1.0, 2.0]),
                "intensity array": make_array("intensity array", [3.0, 4.0]),
                "time array": make_array("time array", [0.1, 0.2, 0.3], series="time array"),
            },
        )
        path = tmp_path / "out.mzML"
        with MzMLWriter(path) as writer:
            writer.write_spectrum(record)
        (spectrum,) = MzMLReader(path).iter_spectra()
        assert spectrum["default_array_length"] == 2
        assert spectrum["arrays"]["time array"]["values"].shape == (3,)
        assert spectrum["arrays"]["time array"]["series"] is not None
