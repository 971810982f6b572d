from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from models.records import FlowRecord, ProvenanceEvent, Relationship
from services.fetcher import StreamFetcher
from services.poller import StreamConfig
from services.publisher import StreamPublisher

VALUE_URL = "http://api.test/v2/devices/dev-1/streams/temperature/value"


class Recorder:
    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None) -> None:
        self.response = response or httpx.Response(202, json={"status": "accepted"})
        self.error = error
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _publisher(recorder: Recorder) -> StreamPublisher:
    config = StreamConfig(
        api_key="secret-key",
        api_url="http://api.test/v2/",
        device_id="dev-1",
        stream_name="temperature",
    )
    fetcher = StreamFetcher(httpx.Client(transport=httpx.MockTransport(recorder)))
    return StreamPublisher(config=config, fetcher=fetcher, penalty_seconds=30.0)


def test_publish_puts_content_as_string_value() -> None:
    recorder = Recorder()
    record = FlowRecord(content=b"21.5", attributes={"source": "sensor"})

    outcome = _publisher(recorder).publish(record)

    assert outcome.relationship is Relationship.success
    assert outcome.record is record
    assert record.relationship is Relationship.success
    assert record.provenance is ProvenanceEvent.send
    assert outcome.penalized is False
    assert outcome.status_code == 202

    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert request.method == "PUT"
    assert str(request.url) == VALUE_URL
    assert request.headers["X-API-KEY"] == "secret-key"
    assert json.loads(request.content) == {"value": "21.5"}


def test_publish_keeps_json_looking_content_as_text() -> None:
    recorder = Recorder()

    _publisher(recorder).publish(FlowRecord(content=b'{"nested": 1}'))

    assert json.loads(recorder.requests[0].content) == {"value": '{"nested": 1}'}


@pytest.mark.parametrize("content", [b"", b"\xff\xfe\xfa"])
def test_unusable_content_fails_without_network_call(content: bytes) -> None:
    recorder = Recorder()

    outcome = _publisher(recorder).publish(FlowRecord(content=content))

    assert outcome.relationship is Relationship.failure
    assert outcome.penalized is False
    assert recorder.requests == []


def test_remote_error_routes_to_failure_with_penalty() -> None:
    recorder = Recorder(response=httpx.Response(422, text="value rejected"))
    record = FlowRecord(content=b"21.5")

    outcome = _publisher(recorder).publish(record)

    assert outcome.relationship is Relationship.failure
    assert outcome.record is record
    assert outcome.penalized is True
    assert outcome.penalty_seconds == 30.0
    assert outcome.yielded is True
    assert outcome.status_code == 422
    assert "value rejected" in (outcome.error or "")
    assert len(recorder.requests) == 1


def test_transport_error_routes_to_failure_with_penalty() -> None:
    recorder = Recorder(error=httpx.ConnectTimeout("timed out"))

    outcome = _publisher(recorder).publish(FlowRecord(content=b"21.5"))

    assert outcome.relationship is Relationship.failure
    assert outcome.penalized is True
    assert outcome.status_code is None
    assert len(recorder.requests) == 1


def test_undecodable_response_routes_to_failure_with_penalty() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    config = StreamConfig(
        api_key="secret-key",
        api_url="http://api.test/v2/",
        device_id="dev-1",
        stream_name="temperature",
    )
    fetcher = StreamFetcher(httpx.Client(transport=httpx.MockTransport(handler)))
    publisher = StreamPublisher(config=config, fetcher=fetcher, penalty_seconds=30.0)

    outcome = publisher.publish(FlowRecord(content=b"42"))

    assert outcome.relationship is Relationship.failure
    assert outcome.penalized is True
    assert outcome.yielded is True
    assert outcome.status_code is None
    assert len(requests) == 1
