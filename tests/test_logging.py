from __future__ import annotations

import io
import sys
from collections.abc import Generator

import pytest

from msdata_io._json_bridge import load_json_str, narrow_json_to_dict
from msdata_io.logging import (
    JsonFormatter,
    LogEventFields,
    TextFormatter,
    get_logger,
    setup_logging,
    stdlib_logging,
)


def _record(msg: str = "test message", level: int = stdlib_logging.INFO) -> stdlib_logging.LogRecord:
    return stdlib_logging.LogRecord(
        name="msdata_io.parser",
        level=level,
        pathname="parser.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def _restore_package_logger() -> Generator[None, None, None]:
    logger = stdlib_logging.getLogger("msdata_io")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_json_formatter_basic() -> None:
    """Test JsonFormatter produces valid JSON with required fields."""
    formatter = JsonFormatter(static_fields={})
    parsed = narrow_json_to_dict(load_json_str(formatter.format(_record())))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "msdata_io.parser"
    assert parsed["message"] == "test message"
    assert "timestamp" in parsed


def test_json_formatter_static_and_structured_fields() -> None:
    """Test static fields and record fields both reach the output."""
    formatter = JsonFormatter(static_fields={"app": "mzcat"})
    record = _record("skipping spectrum")
    record.record_id = "scan=3"
    record.offset = 1024
    record.strategy = ["not", "a", "scalar"]
    parsed = narrow_json_to_dict(load_json_str(formatter.format(record)))
    assert parsed["app"] == "mzcat"
    assert parsed["record_id"] == "scan=3"
    assert parsed["offset"] == 1024
    assert "strategy" not in parsed


def test_json_formatter_exception() -> None:
    """Test exception info is serialized."""
    formatter = JsonFormatter(static_fields={})
    try:
        raise ValueError("boom")
    except ValueError:
        record = stdlib_logging.LogRecord(
            name="msdata_io",
            level=stdlib_logging.ERROR,
            pathname="x.py",
            lineno=1,
            msg="failed",
            args=(),
            exc_info=sys.exc_info(),
        )
    parsed = narrow_json_to_dict(load_json_str(formatter.format(record)))
    exc_info = parsed["exc_info"]
    assert isinstance(exc_info, str)
    assert "ValueError: boom" in exc_info


def test_text_formatter() -> None:
    """Test TextFormatter layout with structured fields."""
    record = _record("checksum mismatch", stdlib_logging.WARNING)
    record.source = "run.mzML"
    record.role = "m/z array"
    line = TextFormatter().format(record)
    assert "[WARNING]" in line
    assert "[msdata_io.parser]" in line
    assert "source=run.mzML" in line
    assert "role=m/z array" in line
    assert line.endswith("checksum mismatch")


def test_log_event_fields_typed_dict() -> None:
    fields: LogEventFields = {"source": "run.mzML", "count": 3}
    assert fields["count"] == 3


@pytest.mark.usefixtures("_restore_package_logger")
def test_setup_logging_json() -> None:
    """Test setup_logging installs one JSON handler on the package logger."""
    logger = setup_logging(level="DEBUG", format_mode="json", app_name="mzcat")
    setup_logging(level="DEBUG", format_mode="json", app_name="mzcat")
    assert logger.name == "msdata_io"
    assert len(logger.handlers) == 1
    assert logger.propagate is False
    assert logger.level == stdlib_logging.DEBUG

    stream = io.StringIO()
    handler = logger.handlers[0]
    assert isinstance(handler, stdlib_logging.StreamHandler)
    handler.setStream(stream)
    get_logger("msdata_io.index").info("index ready", extra={"strategy": "scan"})
    parsed = narrow_json_to_dict(load_json_str(stream.getvalue().strip()))
    assert parsed["app"] == "mzcat"
    assert parsed["strategy"] == "scan"


@pytest.mark.usefixtures("_restore_package_logger")
def test_setup_logging_text_level() -> None:
    """Test the text formatter and level filtering."""
    logger = setup_logging(level="WARNING", format_mode="text", app_name="mzcat")
    stream = io.StringIO()
    handler = logger.handlers[0]
    assert isinstance(handler, stdlib_logging.StreamHandler)
    assert isinstance(handler.formatter, TextFormatter)
    handler.setStream(stream)
    get_logger("msdata_io.parser").info("hidden")
    get_logger("msdata_io.parser").warning("shown")
    assert "hidden" not in stream.getvalue()
    assert "shown" in stream.getvalue()
