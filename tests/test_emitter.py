from __future__ import annotations

from services.codec import ValueCodec
from services.emitter import RecordEmitter
from models.records import ProvenanceEvent, Relationship, StreamWindow


def _window(payload: bytes) -> StreamWindow:
    return ValueCodec().parse_window(payload)


def test_emits_one_record_per_reading_with_fixed_attributes() -> None:
    window = _window(
        b'{"start":"2014-09-01T00:00:00.000Z","end":"2014-09-30T23:59:59.000Z","limit":100,'
        b'"values":[{"timestamp":"2014-09-09T19:15:00.563Z","value":32},'
        b'{"timestamp":"2014-09-09T20:15:00.874Z","value":29}]}'
    )

    records = list(RecordEmitter("dev-1", "temperature").emit(window))

    assert [record.content for record in records] == [b"32", b"29"]
    assert records[0].attributes == {
        "device.id": "dev-1",
        "stream.name": "temperature",
        "stream.start": "2014-09-01T00:00:00.000Z",
        "stream.end": "2014-09-30T23:59:59.000Z",
        "stream.limit": "100",
        "stream.value.timestamp": "2014-09-09T19:15:00.563Z",
        "stream.value.millis": "1410290100563",
    }
    assert records[1].attributes["stream.value.timestamp"] == "2014-09-09T20:15:00.874Z"
    assert all(record.relationship is Relationship.success for record in records)
    assert all(record.provenance is ProvenanceEvent.create for record in records)


def test_extra_fields_become_prefixed_attributes_on_every_record() -> None:
    window = _window(
        b'{"end":"2024-01-01T01:00:00Z","values":['
        b'{"timestamp":"2024-01-01T00:00:00Z","value":"on","quality":"good","seq":1},'
        b'{"timestamp":"2024-01-01T00:30:00Z","value":"off","quality":"good","seq":2}]}'
    )

    records = list(RecordEmitter("dev-1", "switch").emit(window))

    assert [record.attributes["stream.value.quality"] for record in records] == ["good", "good"]
    assert [record.attributes["stream.value.seq"] for record in records] == ["1", "2"]


def test_absent_window_metadata_is_not_emitted() -> None:
    window = _window(b'{"values":[{"timestamp":"2024-01-01T00:00:00Z","value":null}]}')

    record = next(RecordEmitter("dev-1", "temperature").emit(window))

    assert record.content == b"null"
    assert "stream.start" not in record.attributes
    assert "stream.end" not in record.attributes
    assert "stream.limit" not in record.attributes


def test_empty_window_emits_nothing() -> None:
    window = _window(b'{"end":"2024-01-01T00:00:00Z","values":[]}')

    assert list(RecordEmitter("dev-1", "temperature").emit(window)) == []
