from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "location_id",
    "status",
    "error_code",
    "attempt",
    "rate_key",
    "conflict",
    "duration_ms",
    "latitude",
    "longitude",
    "units",
    "location_count",
    "success_count",
)

# Loggers that are chatty at INFO (one line per outbound request or job run).
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Append ``key=value`` pairs for sync context passed through ``extra=``."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts = [
            f"{key}={getattr(record, key)}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def build_logging_config(level: str | int) -> Dict[str, Any]:
    """dictConfig payload: one stderr handler with the contextual formatter."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": ContextualFormatter,
                "fmt": "%(asctime)sZ %(levelname)-7s [%(threadName)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "extra_keys": list(_DEFAULT_EXTRA_KEYS),
            }
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "level": level,
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging once per process."""
    global _configured
    if _configured:
        return

    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
