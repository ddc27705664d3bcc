"""
ContentGate Logging Configuration
Structured logging for workflow transitions, policy checks and deliveries.

Every record carries keyword context (``request_id=..., step_id=...``) and is
written to stdout as one JSON object, or as coloured text when
``CONTENTGATE_LOG_FORMAT=text``. ``bind`` returns a logger that adds fixed
context to every record, so a sweep or a delivery can tag all of its lines.
"""
import json
import logging
import os
import sys
import time
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Optional

# ============================================================
# LOG LEVELS
# ============================================================

LOG_LEVEL = os.environ.get("CONTENTGATE_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("CONTENTGATE_LOG_FORMAT", "json")  # json or text

ROOT_NAME = "contentgate"

# ============================================================
# FORMATTERS
# ============================================================


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, then the context keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "context", {}))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Coloured single-line output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = (
            f"{color}{_record_time(record):%H:%M:%S} {record.levelname:<8}{self.RESET}"
            f" {record.name.split('.')[-1]}: {record.getMessage()}"
        )
        context = getattr(record, "context", {})
        pairs = " ".join(f"{k}={v}" for k, v in context.items() if k != "traceback")
        if pairs:
            line = f"{line} {self.DIM}{pairs}{self.RESET}"
        if context.get("traceback"):
            line = f"{line}\n{context['traceback']}"
        return line


def _handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if LOG_FORMAT == "json" else TextFormatter())
    return handler


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredLogger:
    """Keyword-context logger over a stdlib logger of the same name."""

    def __init__(self, name: str, context: Optional[dict] = None):
        self.name = name
        self.context = dict(context or {})
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
            self.logger.addHandler(_handler())
            self.logger.propagate = False

    def bind(self, **context) -> "StructuredLogger":
        """A logger writing to the same stream with ``context`` added to every record."""
        return StructuredLogger(self.name, {**self.context, **context})

    def _log(self, level: int, message: str, context: dict):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra={"context": {**self.context, **context}})

    @staticmethod
    def _describe(error: Optional[Exception], context: dict) -> dict:
        if error is not None:
            context["error_type"] = type(error).__name__
            context["error_message"] = str(error)
            context["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        return context

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, error: Optional[Exception] = None, **context):
        self._log(logging.ERROR, message, self._describe(error, context))

    def critical(self, message: str, error: Optional[Exception] = None, **context):
        self._log(logging.CRITICAL, message, self._describe(error, context))


_loggers: Dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """Shared logger for ``contentgate.<name>``."""
    full_name = name if name.startswith(ROOT_NAME) else f"{ROOT_NAME}.{name}"
    if full_name not in _loggers:
        _loggers[full_name] = StructuredLogger(full_name)
    return _loggers[full_name]


# ============================================================
# OPERATION TIMING
# ============================================================

def timed(logger: StructuredLogger):
    """Log how long an engine operation took, at debug level, whether it returned or raised."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            outcome = "failed"
            try:
                result = func(*args, **kwargs)
                outcome = "completed"
                return result
            finally:
                logger.debug(
                    f"{func.__name__} {outcome}",
                    operation=func.__qualname__,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
        return wrapper
    return decorator


# ============================================================
# LOGGER INSTANCES
# ============================================================

api_logger = get_logger("api")
engine_logger = get_logger("engine")
worker_logger = get_logger("worker")
db_logger = get_logger("db")
