"""
Structured logging configuration.

Records carry the id of the viewer the current request acts for, when one has
been bound with :func:`bind_viewer`.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from marketplace_chat.core.config import get_settings

LOGGER_NAME = "marketplace_chat"

_viewer_id: ContextVar[Optional[str]] = ContextVar("viewer_id", default=None)


def bind_viewer(user_id: Optional[str]) -> None:
    """Attach a viewer id to every log record emitted in the current context."""
    _viewer_id.set(user_id)


class ViewerContextFilter(logging.Filter):
    """Copy the bound viewer id onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.viewer_id = _viewer_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        viewer_id = getattr(record, "viewer_id", None)
        if viewer_id:
            log_data["viewer_id"] = viewer_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human readable formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> logging.Logger:
    """Configure and return the package logger."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ViewerContextFilter())

    if settings.log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
