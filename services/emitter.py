"""Conversion of parsed stream readings into output records."""

from __future__ import annotations

from typing import Dict, Iterator

from models.records import FlowRecord, ProvenanceEvent, Reading, Relationship, StreamWindow
from services.codec import epoch_millis, format_instant

DEVICE_ID_ATTR = "device.id"
STREAM_NAME_ATTR = "stream.name"
STREAM_START_ATTR = "stream.start"
STREAM_END_ATTR = "stream.end"
STREAM_LIMIT_ATTR = "stream.limit"
VALUE_PREFIX = "stream.value."
VALUE_TIMESTAMP_ATTR = VALUE_PREFIX + "timestamp"
VALUE_MILLIS_ATTR = VALUE_PREFIX + "millis"


class RecordEmitter:
    """Builds one ``success`` record per reading, in window order."""

    def __init__(self, device_id: str, stream_name: str) -> None:
        self.device_id = device_id
        self.stream_name = stream_name

    def emit(self, window: StreamWindow) -> Iterator[FlowRecord]:
        window_attributes = self._window_attributes(window)
        for reading in window.values:
            yield self._to_record(reading, window_attributes)

    def _window_attributes(self, window: StreamWindow) -> Dict[str, str]:
        attributes = {
            DEVICE_ID_ATTR: self.device_id,
            STREAM_NAME_ATTR: self.stream_name,
        }
        if window.start is not None:
            attributes[STREAM_START_ATTR] = format_instant(window.start)
        if window.end is not None:
            attributes[STREAM_END_ATTR] = format_instant(window.end)
        if window.limit is not None:
            attributes[STREAM_LIMIT_ATTR] = str(window.limit)
        return attributes

    @staticmethod
    def _to_record(reading: Reading, window_attributes: Dict[str, str]) -> FlowRecord:
        attributes = dict(window_attributes)
        if reading.timestamp is not None:
            attributes[VALUE_TIMESTAMP_ATTR] = format_instant(reading.timestamp)
            attributes[VALUE_MILLIS_ATTR] = str(epoch_millis(reading.timestamp))
        for key, value in reading.extra_fields.items():
            attributes[VALUE_PREFIX + key] = value.to_text()

        return FlowRecord(
            content=reading.value.to_text().encode("utf-8"),
            attributes=attributes,
            relationship=Relationship.success,
            provenance=ProvenanceEvent.create,
        )
