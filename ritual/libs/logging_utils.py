"""Logging setup for Ritual: JSON lines with the active cycle/request context attached."""

from __future__ import annotations

import contextvars
import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Dict, Iterator

_DEV_ENVIRONMENTS = {"local", "dev", "development", "test"}

# Fields every record carries, None when no context is bound.
CONTEXT_FIELDS = ("cycle_id", "request_id", "user_id")

_LOG_CONTEXT: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("ritual_log_context", default={})

_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "taskName"}


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block, including from awaited coroutines."""

    token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_LOG_CONTEXT.get())


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        context = _LOG_CONTEXT.get()
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, context.get(name))
        for name, value in context.items():
            if not hasattr(record, name):
                setattr(record, name, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; bound context and ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            if key in CONTEXT_FIELDS and value is None:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines for local runs, with bound context appended as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{name}={getattr(record, name)}" for name in CONTEXT_FIELDS if getattr(record, name, None) is not None
        )
        return f"{line} [{context}]" if context else line


def configure_logging() -> None:
    """
    Configure the root logger from ``RITUAL_LOG_LEVEL`` and ``RITUAL_LOG_FORMAT``.

    ``RITUAL_LOG_FORMAT`` is ``json`` (default) or ``text``. The level defaults
    to DEBUG in development environments and INFO elsewhere.
    """

    environment = os.getenv("RITUAL_ENVIRONMENT", "dev").lower()
    default_level = "DEBUG" if environment in _DEV_ENVIRONMENTS else "INFO"
    log_level = os.getenv("RITUAL_LOG_LEVEL", default_level).upper()
    log_format = os.getenv("RITUAL_LOG_FORMAT", "json").lower()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"context": {"()": ContextFilter}},
            "formatters": {
                "json": {"()": JsonFormatter},
                "text": {
                    "()": ContextTextFormatter,
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "text" if log_format == "text" else "json",
                    "filters": ["context"],
                    "level": log_level,
                }
            },
            "root": {"handlers": ["console"], "level": log_level},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "asyncpg": {"level": "WARNING"},
                "rq.worker": {"level": "INFO"},
            },
        }
    )


__all__ = [
    "CONTEXT_FIELDS",
    "ContextFilter",
    "ContextTextFormatter",
    "JsonFormatter",
    "bind_log_context",
    "configure_logging",
    "current_log_context",
]
