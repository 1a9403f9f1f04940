"""Tests for concurrent record retrieval."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest

from msdata_io._exceptions import UnknownRecordError
from msdata_io.dispatch import aread_records, read_parallel
from msdata_io.readers.mzml import MzMLReader
from msdata_io.record import record_equal


class TestReadParallel:
    """Tests for read_parallel."""

    def test_keeps_identifier_order(self, indexed_mzml: Path) -> None:
        """Test results follow the requested order, not completion order."""
        reader = MzMLReader(indexed_mzml)
        ids = ["scan=3", "scan=1", "scan=2", "scan=1"]
        records = read_parallel(reader, ids, max_workers=3)
        assert [r["id"] for r in records] == ids
        assert record_equal(records[1], reader.get_by_id("scan=1"))

    def test_stream_reader(self, indexed_mzml: Path) -> None:
        """Test a shared stream is read safely from several threads."""
        reader = MzMLReader(io.BytesIO(indexed_mzml.read_bytes()))
        records = read_parallel(reader, ["scan=2", "scan=3", "scan=1"], max_workers=4)
        assert [r["id"] for r in records] == ["scan=2", "scan=3", "scan=1"]

    def test_unknown_identifier(self, indexed_mzml: Path) -> None:
        """Test a missing id fails the whole call."""
        with pytest.raises(UnknownRecordError):
            read_parallel(MzMLReader(indexed_mzml), ["scan=1", "scan=9"])

    def test_empty(self, indexed_mzml: Path) -> None:
        assert read_parallel(MzMLReader(indexed_mzml), []) == []


class TestAreadRecords:
    """Tests for aread_records."""

    def test_gathers_in_order(self, indexed_mzml: Path) -> None:
        """Test asyncio retrieval keeps the requested order."""
        reader = MzMLReader(indexed_mzml)
        records = asyncio.run(aread_records(reader, ["scan=2", "scan=1"], concurrency=1))
        assert [r["id"] for r in records] == ["scan=2", "scan=1"]

    def test_unknown_identifier(self, indexed_mzml: Path) -> None:
        """Test errors propagate out of the event loop."""
        reader = MzMLReader(indexed_mzml)
        with pytest.raises(UnknownRecordError):
            asyncio.run(aread_records(reader, ["scan=7"]))
