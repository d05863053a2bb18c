"""
Structured logging for the menu sync service.

Log calls take keyword context next to the message:

    logger.info("Full sync completed", tenant_id="t1", location_id="l1", written=12)

The context travels on the record as ``extra_data``. Production renders one
JSON object per line; development renders a colored single line. Records
emitted while serving an HTTP request also carry its correlation ID.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Context keys lifted to the top level of JSON records so that log queries
# can filter by scope without digging into "data"
SCOPE_KEYS = ("tenant_id", "location_id", "scope")

# Third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


def _request_id(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        context = dict(_context(record))
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in SCOPE_KEYS:
            if key in context:
                entry[key] = context.pop(key)

        request_id = _request_id(record)
        if request_id:
            entry["request_id"] = request_id
        if context:
            entry["data"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.pathname}:{record.lineno}"

        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for local development."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]
        request_id = _request_id(record)
        if request_id:
            parts.append(f"{self.DIM}{request_id[:8]}{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        line = " ".join(parts)
        context = _context(record)
        if context:
            line += "  " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept keyword context.

    ``exc_info``, ``stack_info`` and ``stacklevel`` keep their usual
    meaning; every other keyword is context.
    """

    _RESERVED = ("exc_info", "stack_info", "stacklevel")

    def _structured(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        options = {key: kwargs.pop(key) for key in self._RESERVED if key in kwargs}
        extra = kwargs.pop("extra", None) or {}
        extra["extra_data"] = kwargs or None
        options["stacklevel"] = options.get("stacklevel", 1) + 2
        self._log(level, msg, args, extra=extra, **options)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._structured(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._structured(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._structured(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._structured(logging.ERROR, msg, args, kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self._structured(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._structured(logging.CRITICAL, msg, args, kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the root handler. Called once from the application lifespan.

    JSON in production, console lines elsewhere; DEBUG when debug is on.
    """
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JsonFormatter() if settings.environment == "production" else ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, cap in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)


def get_logger(name: str) -> StructuredLogger:
    """
    Logger for ``name`` (usually ``__name__``).

        logger = get_logger(__name__)
        logger.error("Cost batch rejected", scope="t1:l1", exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


# Component loggers shared by the services
sync_api_logger = get_logger("menu_sync.api")
reconciliation_logger = get_logger("menu_sync.reconciliation")
cost_sync_logger = get_logger("menu_sync.cost_sync")
