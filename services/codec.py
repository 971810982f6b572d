"""JSON codec for stream values and the instant format used on the wire."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from models.records import Reading, ScalarValue, StreamWindow
from services.errors import MalformedPayload

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MILLI = timedelta(milliseconds=1)


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant, normalising it to UTC."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp format: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _ONE_MILLI


class ValueCodec:
    """Translates between stream-values JSON documents and domain models."""

    def parse_window(self, payload: Union[bytes, str]) -> StreamWindow:
        try:
            document = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedPayload(f"Response body is not valid JSON: {exc}") from exc

        if not isinstance(document, dict):
            raise MalformedPayload(
                f"Expected a JSON object, got {type(document).__name__}."
            )

        raw_values = document.get("values")
        if raw_values is None:
            raw_values = []
        elif not isinstance(raw_values, list):
            raise MalformedPayload("Field 'values' must be an array.")

        readings = tuple(
            self._parse_reading(item, index) for index, item in enumerate(raw_values)
        )
        return StreamWindow(
            start=self._optional_instant(document, "start"),
            end=self._optional_instant(document, "end"),
            limit=self._optional_limit(document),
            values=readings,
        )

    def serialize_reading(self, reading: Reading) -> bytes:
        """Encode a reading for publishing; extra fields are never sent."""
        body: Dict[str, Any] = {}
        if reading.timestamp is not None:
            body["timestamp"] = format_instant(reading.timestamp)
        body["value"] = reading.value.to_json()
        return json.dumps(body, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _parse_reading(item: Any, index: int) -> Reading:
        if not isinstance(item, dict):
            raise MalformedPayload(f"Value at index {index} is not a JSON object.")

        raw_timestamp = item.get("timestamp")
        if not isinstance(raw_timestamp, str):
            raise MalformedPayload(f"Value at index {index} has no timestamp.")
        try:
            timestamp = parse_instant(raw_timestamp)
        except ValueError as exc:
            raise MalformedPayload(
                f"Value at index {index} has an invalid timestamp {raw_timestamp!r}."
            ) from exc

        extra_fields = {
            key: ScalarValue.from_json(raw)
            for key, raw in item.items()
            if key not in ("timestamp", "value")
        }
        return Reading(
            timestamp=timestamp,
            value=ScalarValue.from_json(item.get("value")),
            extra_fields=extra_fields,
        )

    @staticmethod
    def _optional_instant(document: Dict[str, Any], key: str) -> Optional[datetime]:
        raw = document.get(key)
        if raw is None:
            return None
        if not isinstance(raw, str):
            raise MalformedPayload(f"Field {key!r} must be an ISO-8601 string.")
        try:
            return parse_instant(raw)
        except ValueError as exc:
            raise MalformedPayload(f"Field {key!r} is not a valid instant: {raw!r}.") from exc

    @staticmethod
    def _optional_limit(document: Dict[str, Any]) -> Optional[int]:
        raw = document.get("limit")
        if raw is None:
            return None
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise MalformedPayload("Field 'limit' must be an integer.")
        return raw
