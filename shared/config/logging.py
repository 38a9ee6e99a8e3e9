"""
Structured logging for the host gateway.

Any keyword argument given to a logger call travels with the record as
structured data and is rendered by the active formatter:

    logger.info("Hosts marked as unreachable", count=3, hosts=[...])

Production emits one JSON object per line; every other environment gets a
colored single-line format.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


SERVICE_NAME = "host-gateway"

# Third-party loggers and the level they are capped at
QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
}


def _record_data(record: logging.LogRecord) -> dict[str, Any] | None:
    return getattr(record, "extra_data", None) or None


class StructuredFormatter(logging.Formatter):
    """One JSON document per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "pid": os.getpid(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        data = _record_data(record)
        if data:
            payload["data"] = data

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            payload["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(payload, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored, human-readable lines for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        line = (
            f"{clock} {color}{record.levelname:<8}{self.RESET} "
            f"{record.name} | {record.getMessage()}"
        )

        data = _record_data(record)
        if data:
            line += "  " + " ".join(f"{key}={value!r}" for key, value in data.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose methods accept arbitrary keyword data.

    All of debug/info/warning/error/critical/exception/log funnel through
    _log, so overriding it is enough. The standard keywords (exc_info,
    extra, stack_info, stacklevel) keep their usual meaning.
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **data: Any,
    ) -> None:
        extra = dict(extra or {})
        extra["extra_data"] = data or None
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(level: int | None = None) -> None:
    """
    Install the stdout handler on the root logger. Call once at startup.

    Args:
        level: Root level; DEBUG when settings.debug, INFO otherwise.
    """
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, cap in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)


def flush_logging() -> None:
    """Flush every root handler; used right before a forced process exit."""
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            # Stream already closed
            pass


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Stale host connections detected", count=2)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


host_gateway_logger = get_logger("host_gateway")
