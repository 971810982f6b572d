from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

import httpx

from services.errors import ConfigurationError

DEFAULT_API_URL = "http://api-m2x.att.com/v2/"

_API_KEY_ENV = "STREAM_API_KEY"
_API_URL_ENV = "STREAM_API_URL"
_DEVICE_ID_ENV = "STREAM_DEVICE_ID"
_STREAM_NAME_ENV = "STREAM_NAME"
_START_TIME_AGO_ENV = "STREAM_START_TIME_AGO"
_STATE_NAME_ENV = "STREAM_STATE_NAME"
_STATE_PATH_ENV = "STREAM_STATE_PATH"
_HTTP_TIMEOUT_ENV = "STREAM_HTTP_TIMEOUT"
_YIELD_ENV = "STREAM_YIELD_DURATION"
_PENALTY_ENV = "STREAM_PENALTY_DURATION"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TIME_PERIOD = re.compile(r"^(\d+(?:\.\d+)?)\s*([a-z]*)$")
_UNIT_SECONDS = {
    "ns": 1e-9, "nano": 1e-9, "nanos": 1e-9, "nanosecond": 1e-9, "nanoseconds": 1e-9,
    "ms": 1e-3, "milli": 1e-3, "millis": 1e-3, "millisecond": 1e-3, "milliseconds": 1e-3,
    "": 1.0, "s": 1.0, "sec": 1.0, "secs": 1.0, "second": 1.0, "seconds": 1.0,
    "m": 60.0, "min": 60.0, "mins": 60.0, "minute": 60.0, "minutes": 60.0,
    "h": 3600.0, "hr": 3600.0, "hrs": 3600.0, "hour": 3600.0, "hours": 3600.0,
    "d": 86400.0, "day": 86400.0, "days": 86400.0,
}


@dataclass(frozen=True)
class Settings:
    api_key: str
    api_url: str
    device_id: str
    stream_name: str
    start_time_ago: timedelta
    state_name: str
    state_persistence_path: Optional[str]
    http_timeout: float
    yield_seconds: float
    penalty_seconds: float
    log_level: str

    def require_stream(self) -> None:
        """Raise if any setting needed to talk to a stream is missing."""
        missing = [
            env
            for env, value in (
                (_API_KEY_ENV, self.api_key),
                (_DEVICE_ID_ENV, self.device_id),
                (_STREAM_NAME_ENV, self.stream_name),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required stream settings: {', '.join(missing)}"
            )


def parse_time_period(value: str) -> timedelta:
    """Parse durations such as ``"0 secs"``, ``"10 mins"`` or ``"250 millis"``."""
    match = _TIME_PERIOD.match(value.strip().lower())
    if match is None or match.group(2) not in _UNIT_SECONDS:
        raise ConfigurationError(f"Invalid time period: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=float(amount) * _UNIT_SECONDS[unit])


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_period_env(name: str, default: str) -> timedelta:
    return parse_time_period(_read_str_env(name, default))


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_api_url(default: str) -> str:
    candidate = _read_str_env(_API_URL_ENV, default)
    try:
        url = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid API URL: {candidate!r}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise ConfigurationError(f"API URL must be an absolute http(s) URL: {candidate!r}")
    return candidate


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        api_key=_read_str_env(_API_KEY_ENV, ""),
        api_url=_read_api_url(DEFAULT_API_URL),
        device_id=_read_str_env(_DEVICE_ID_ENV, ""),
        stream_name=_read_str_env(_STREAM_NAME_ENV, ""),
        start_time_ago=_read_period_env(_START_TIME_AGO_ENV, "0 secs"),
        state_name=_read_str_env(_STATE_NAME_ENV, "stream_state"),
        state_persistence_path=_read_optional_env(_STATE_PATH_ENV, "./tmp/stream_state.json"),
        http_timeout=_read_positive_float(_HTTP_TIMEOUT_ENV, 30.0),
        yield_seconds=_read_period_env(_YIELD_ENV, "1 sec").total_seconds(),
        penalty_seconds=_read_period_env(_PENALTY_ENV, "30 secs").total_seconds(),
        log_level=_read_log_level("INFO"),
    )
