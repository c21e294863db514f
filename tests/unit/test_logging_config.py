"""
Unit tests for structured JSON logging configuration.
"""
import sys
import json
import logging

from src.common.logging_config import JSONFormatter, setup_logging, get_logger, set_level
from src.common.correlation import CorrelationFilter


def _record(msg="msg", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="test", level=level,
        pathname="", lineno=1, msg=msg, args=(), exc_info=exc_info
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSONFormatter output"""

    def setup_method(self):
        self.formatter = JSONFormatter()

    def test_format_basic_fields(self):
        record = logging.LogRecord(
            name="src.collector.poller",
            level=logging.INFO,
            pathname="poller.py",
            lineno=42,
            msg="Polled %s",
            args=("rabbit-a",),
            exc_info=None
        )
        data = json.loads(self.formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "src.collector.poller"
        assert data["message"] == "Polled rabbit-a"
        assert data["line"] == 42
        assert data["timestamp"].endswith("Z")

    def test_format_includes_correlation_id(self):
        data = json.loads(self.formatter.format(_record(correlation_id="abc-123")))
        assert data["correlation_id"] == "abc-123"

    def test_format_excludes_empty_correlation_id(self):
        data = json.loads(self.formatter.format(_record(correlation_id="")))
        assert "correlation_id" not in data

    def test_format_includes_component(self):
        data = json.loads(self.formatter.format(_record(component="rabbit-a")))
        assert data["component"] == "rabbit-a"

    def test_format_includes_node(self):
        data = json.loads(self.formatter.format(_record(node="rabbit-b")))
        assert data["node"] == "rabbit-b"

    def test_format_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(
            self.formatter.format(_record("error", logging.ERROR, exc_info=exc_info))
        )
        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Test setup_logging function"""

    def test_sets_level(self):
        logger = setup_logging("test.level", level="WARNING")
        assert logger.level == logging.WARNING

    def test_uses_json_formatter(self):
        logger = setup_logging("test.formatter")
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_attaches_correlation_filter(self):
        logger = setup_logging("test.filter_attach")
        assert any(isinstance(f, CorrelationFilter) for f in logger.filters)

    def test_no_duplicate_handlers(self):
        setup_logging("test.dedup")
        logger = setup_logging("test.dedup")
        assert len(logger.handlers) == 1

    def test_propagation_disabled(self):
        logger = setup_logging("test.propagate")
        assert logger.propagate is False


class TestGetLogger:
    """Test get_logger function"""

    def test_get_logger_with_level(self):
        logger = get_logger("test.get_level", level="ERROR")
        assert logger.level == logging.ERROR

    def test_get_logger_creates_new_if_no_handlers(self):
        name = "test.get_new_logger_unique_42"
        logging.getLogger(name).handlers.clear()

        logger = get_logger(name)
        assert len(logger.handlers) > 0


class TestSetLevel:
    """Test set_level for CLI --log-level"""

    def test_applies_to_prefixed_loggers(self):
        inside = get_logger("lvlprefix.collector")
        outside = get_logger("otherprefix.collector")
        outside.setLevel(logging.INFO)

        set_level("DEBUG", prefix="lvlprefix")

        assert inside.level == logging.DEBUG
        assert outside.level == logging.INFO
