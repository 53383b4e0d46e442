import json
import logging
import sys
import pytest
from unittest.mock import patch

from core.logging_config import (
    ColoredConsoleFormatter,
    CorrelationFilter,
    StructuredFormatter,
    correlation_id,
    get_correlation_id,
    get_logger,
    get_logging_config,
    log_function_call,
    set_correlation_id,
)


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="/path/to/file.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestLoggingConfig:
    """Test logging configuration building."""

    def test_development_uses_colored_console(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "development", "LOG_LEVEL": "debug"}):
            config = get_logging_config()

        console = config["handlers"]["console"]
        assert console["formatter"] == "colored_console"
        assert console["level"] == "DEBUG"
        assert "correlation" in console["filters"]
        assert "file" not in config["handlers"]

    def test_non_development_uses_structured(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "staging"}):
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "structured"

    def test_production_adds_file_handler(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "production", "LOG_FILE": "/tmp/feed.log"}):
            config = get_logging_config()

        assert config["handlers"]["file"]["filename"] == "/tmp/feed.log"
        assert "file" in config["loggers"]["services"]["handlers"]
        assert "file" in config["root"]["handlers"]

    def test_feed_loggers_configured(self):
        config = get_logging_config()
        for name in ("api", "services", "providers", "core"):
            assert name in config["loggers"]
        assert config["loggers"]["aiohttp"]["level"] == "WARNING"

    def test_get_logger(self):
        logger = get_logger("services.video_service")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "services.video_service"


class TestCorrelationFilter:
    """Test CorrelationFilter functionality."""

    def test_adds_correlation_id(self):
        token = correlation_id.set("corr-123")
        try:
            record = make_record()
            assert CorrelationFilter().filter(record) is True
            assert record.correlation_id == "corr-123"
        finally:
            correlation_id.reset(token)

    def test_no_correlation_id(self):
        token = correlation_id.set(None)
        try:
            record = make_record()
            assert CorrelationFilter().filter(record) is True
            assert not hasattr(record, "correlation_id")
        finally:
            correlation_id.reset(token)

    def test_set_and_get(self):
        token = correlation_id.set(None)
        try:
            set_correlation_id("abc")
            assert get_correlation_id() == "abc"
        finally:
            correlation_id.reset(token)


class TestStructuredFormatter:
    """Test StructuredFormatter functionality."""

    def test_basic_formatting(self):
        record = make_record()
        record.correlation_id = "corr-123"

        log_data = json.loads(StructuredFormatter().format(record))

        assert log_data["timestamp"]
        assert log_data["level"] == "INFO"
        assert log_data["logger"] == "test_logger"
        assert log_data["message"] == "Test message"
        assert log_data["correlation_id"] == "corr-123"
        assert log_data["module"] == "file"
        assert log_data["line"] == 42

    def test_extra_fields(self):
        record = make_record(level=logging.ERROR)
        record.video_id = "v1"
        record.attempt = 2

        log_data = json.loads(StructuredFormatter().format(record))

        assert log_data["extra"]["video_id"] == "v1"
        assert log_data["extra"]["attempt"] == 2
        assert "msg" not in log_data["extra"]

    def test_exception_info(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        log_data = json.loads(StructuredFormatter().format(record))

        assert log_data["exception"]["type"] == "ValueError"
        assert log_data["exception"]["message"] == "Test exception"
        assert "Traceback" in log_data["exception"]["traceback"]


class TestColoredConsoleFormatter:
    """Test ColoredConsoleFormatter functionality."""

    def test_includes_level_color_and_correlation(self):
        record = make_record(level=logging.WARNING)
        record.correlation_id = "corr-9"

        formatted = ColoredConsoleFormatter().format(record)

        assert formatted.startswith(ColoredConsoleFormatter.COLORS["WARNING"])
        assert "[corr-9]" in formatted
        assert "Test message" in formatted
        assert formatted.endswith(ColoredConsoleFormatter.RESET)


class TestLogFunctionCall:
    """Test the log_function_call decorator."""

    @pytest.mark.asyncio
    async def test_async_success(self, mock_logger):
        @log_function_call(mock_logger)
        async def fetch_page(page):
            return page * 2

        assert await fetch_page(3) == 6
        assert mock_logger.debug.call_count == 2
        completed = mock_logger.debug.call_args_list[-1]
        assert completed.kwargs["extra"]["success"] is True
        assert fetch_page.__name__ == "fetch_page"

    @pytest.mark.asyncio
    async def test_async_failure_is_logged_and_reraised(self, mock_logger):
        @log_function_call(mock_logger)
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await broken()

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["extra"]["error_type"] == "RuntimeError"

    def test_sync_function(self, mock_logger):
        @log_function_call(mock_logger)
        def add(a, b):
            return a + b

        assert add(1, 2) == 3
        assert mock_logger.debug.call_count == 2
