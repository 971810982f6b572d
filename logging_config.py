from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Optional, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "device_id",
    "stream_name",
    "state",
    "url",
    "status_code",
    "cursor",
    "record_count",
    "reason",
)

_REDACTED = "***"

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends the stream context passed through ``extra=`` as ``key=value`` pairs."""

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
        context = " ".join(
            f"{key}={getattr(record, key)}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        )
        return f"{message} | {context}" if context else message


class SecretRedactingFilter(logging.Filter):
    """Masks the API key in the message and in the context fields the formatter renders.

    Exception tracebacks are not rewritten.
    """

    def __init__(self, secret: Optional[str] = None, extra_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self._secret = secret or None
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secret is None:
            return True
        message = record.getMessage()
        if self._secret in message:
            record.msg = message.replace(self._secret, _REDACTED)
            record.args = None
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if isinstance(value, str) and self._secret in value:
                setattr(record, key, value.replace(self._secret, _REDACTED))
        return True


def configure_logging(level: str | int | None = None) -> None:
    """Configure process-wide logging for the bridge service and CLI."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact_secrets": {
                    "()": "logging_config.SecretRedactingFilter",
                    "secret": settings.api_key,
                }
            },
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                    "filters": ["redact_secrets"],
                }
            },
            # httpx logs every request line at INFO.
            "loggers": {"httpx": {"level": "WARNING"}},
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
