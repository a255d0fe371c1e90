"""Logging setup for the runtime bridge.

Every record can carry the current runtime connection context (status and
session) so log lines from concurrent summarize calls, reconnect chains and
request handlers can be correlated without threading ids through each call.
"""

import json
import logging
import sys
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Libraries that log every HTTP exchange; the reconnect loop and readiness
# polling would otherwise flood the output
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class ConnectionContextFilter(logging.Filter):
    """Stamps records with ``record.connection`` from a context provider.

    The provider is usually ``ConnectionState.log_context``; it is read at emit
    time, so the stamp always reflects the state when the line was logged.
    """

    def __init__(self, provider: Callable[[], dict[str, Any]]):
        super().__init__()
        self._provider = provider

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "connection"):
            record.connection = self._provider()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: base fields, connection context, then ``runtime`` extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection = getattr(record, "connection", None)
        if connection:
            log_data["connection"] = connection

        # logger.info(..., extra={"runtime": {...}})
        runtime_fields = getattr(record, "runtime", None)
        if isinstance(runtime_fields, dict):
            log_data.update(runtime_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured console lines with a short ``(status session)`` suffix when known."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        formatted = f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        connection = getattr(record, "connection", None)
        if connection:
            label = connection.get("status", "?")
            if connection.get("session"):
                label += f" {connection['session']}"
            formatted += f" ({label})"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    log_level: str = "INFO",
    log_file: str | None = None,
    structured: bool = False,
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Configure the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; file output is always JSON
        structured: Emit JSON lines on the console instead of coloured text
        quiet_loggers: Loggers capped at WARNING
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter() if structured else ConsoleFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized at {log_level} level")


def attach_connection_context(provider: Callable[[], dict[str, Any]]) -> ConnectionContextFilter:
    """Add a context filter to every root handler; undo with detach_connection_context."""
    context_filter = ConnectionContextFilter(provider)
    for handler in logging.getLogger().handlers:
        handler.addFilter(context_filter)
    return context_filter


def detach_connection_context(context_filter: ConnectionContextFilter) -> None:
    for handler in logging.getLogger().handlers:
        handler.removeFilter(context_filter)
