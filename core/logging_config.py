"""
Logging Configuration for the Feed Client.

This module provides centralized logging for the feed data access layer and
the feed gateway. It emits color-coded, human-readable logs in development and
structured JSON everywhere else, and threads a request correlation ID through
asynchronous code so that every log line of one feed request can be grouped.

Key Components:
- `CorrelationFilter`: Injects the current correlation ID into each record.
- `StructuredFormatter`: Outputs records as JSON, including `extra` fields.
- `ColoredConsoleFormatter`: Adds color to log levels for local development.
- `get_logging_config`: Builds the `dictConfig` dictionary from the
  `ENVIRONMENT` and `LOG_LEVEL` environment variables.
- `setup_logging`: Applies the configuration.
- `log_function_call`: Decorator logging entry, exit and execution time.
"""

import os
import json
import time
import inspect
import functools
import logging
import logging.config
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variable for request correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_ATTRS = {
    "name",
    "msg",
    "message",
    "asctime",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "correlation_id",
}


class CorrelationFilter(logging.Filter):
    """Filter that adds correlation ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        corr_id = correlation_id.get()
        if corr_id:
            record.correlation_id = corr_id
        return True


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        corr_id = getattr(record, "correlation_id", None)
        corr_part = f" [{corr_id}]" if corr_id else ""

        formatted = f"{color}[{timestamp}] {record.levelname:8} {record.name}{corr_part}: {record.getMessage()}{reset}"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class StructuredFormatter(logging.Formatter):
    """Custom formatter that outputs structured JSON logs"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        corr_id = getattr(record, "correlation_id", None) or correlation_id.get()
        if corr_id:
            log_entry["correlation_id"] = corr_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str)


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration based on environment"""

    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "correlation": {"()": CorrelationFilter},
        },
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "colored_console": {
                "()": ColoredConsoleFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "colored_console"
                if environment == "development"
                else "structured",
                "filters": ["correlation"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # Application loggers
            "api": {"level": log_level, "handlers": ["console"], "propagate": False},
            "services": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "providers": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "core": {"level": log_level, "handlers": ["console"], "propagate": False},
            # Third-party loggers
            "aiohttp": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    # Add file logging for production
    if environment == "production":
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "structured",
            "filters": ["correlation"],
            "filename": os.getenv("LOG_FILE", "/var/log/vayu_feed/app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    return config


def setup_logging():
    """Initialize logging configuration"""
    config = get_logging_config()
    logging.config.dictConfig(config)

    logger = logging.getLogger("core.logging")
    environment = os.getenv("ENVIRONMENT", "development")
    logger.info(f"Logging initialized for {environment} environment")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_correlation_id(corr_id: str):
    """Set correlation ID for the current context"""
    correlation_id.set(corr_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from the current context"""
    return correlation_id.get()


def log_function_call(logger: logging.Logger):
    """Decorator to log function calls with parameters and execution time"""

    def decorator(func):
        def _log_start(args, kwargs):
            logger.debug(
                f"Calling {func.__name__}",
                extra={
                    "call": func.__name__,
                    "args_count": len(args),
                    "kwargs_keys": list(kwargs.keys()),
                },
            )

        def _log_end(start_time, error: Optional[Exception] = None):
            execution_time_ms = round((time.time() - start_time) * 1000, 2)
            if error is None:
                logger.debug(
                    f"Completed {func.__name__}",
                    extra={
                        "call": func.__name__,
                        "execution_time_ms": execution_time_ms,
                        "success": True,
                    },
                )
                return
            logger.error(
                f"Failed {func.__name__}: {error}",
                extra={
                    "call": func.__name__,
                    "execution_time_ms": execution_time_ms,
                    "success": False,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            _log_start(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_end(start_time, e)
                raise
            _log_end(start_time)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            _log_start(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_end(start_time, e)
                raise
            _log_end(start_time)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
