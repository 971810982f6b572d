"""Write path: publish one incoming record as a new stream value."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx

from models.records import FlowRecord, ProvenanceEvent, Reading, Relationship, ScalarValue
from services.codec import ValueCodec
from services.fetcher import FetchSuccess, RemoteError, StreamFetcher, build_value_url
from services.poller import StreamConfig
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class PublishOutcome:
    record: FlowRecord
    relationship: Relationship
    status_code: Optional[int] = None
    penalized: bool = False
    penalty_seconds: float = 0.0
    yielded: bool = False
    error: Optional[str] = None


class StreamPublisher:
    """Sends a record's text content to the stream with a single PUT."""

    def __init__(
        self,
        config: StreamConfig,
        fetcher: StreamFetcher,
        codec: Optional[ValueCodec] = None,
        penalty_seconds: float = 30.0,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.codec = codec or ValueCodec()
        self.penalty_seconds = penalty_seconds

    @property
    def url(self) -> str:
        return build_value_url(self.config.api_url, self.config.device_id, self.config.stream_name)

    def encode(self, record: FlowRecord) -> Optional[bytes]:
        """Serialized stream value for ``record`` or ``None`` when it has no text."""
        try:
            text = record.text()
        except UnicodeDecodeError as exc:
            logger.error(
                "Record content is not valid UTF-8",
                exc_info=exc,
                extra={"stream_name": self.config.stream_name, "reason": str(exc)},
            )
            return None
        if not text:
            return None
        return self.codec.serialize_reading(
            Reading(timestamp=None, value=ScalarValue.string(text))
        )

    def publish(self, record: FlowRecord) -> PublishOutcome:
        context = {"device_id": self.config.device_id, "stream_name": self.config.stream_name}

        body = self.encode(record)
        if body is None:
            logger.error(
                "Record contents didn't produce a valid stream value",
                extra={**context, "reason": "empty or undecodable content"},
            )
            return self._route(
                record,
                Relationship.failure,
                error="Record content is empty or not valid UTF-8.",
            )

        result = self.fetcher.send("PUT", self.url, self.config.api_key, body=body)
        if isinstance(result, FetchSuccess):
            logger.info(
                "Published stream value",
                extra={**context, "status_code": result.status_code},
            )
            record.provenance = ProvenanceEvent.send
            return self._route(record, Relationship.success, status_code=result.status_code)

        if isinstance(result, RemoteError):
            status_code: Optional[int] = result.status_code
            error = f"HTTP {result.status_code}: {result.message}"
        else:
            status_code = None
            error = f"Transport error: {result.message}"
        return self._route(
            record,
            Relationship.failure,
            status_code=status_code,
            error=error,
            penalized=True,
        )

    def _route(
        self,
        record: FlowRecord,
        relationship: Relationship,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        penalized: bool = False,
    ) -> PublishOutcome:
        record.relationship = relationship
        return PublishOutcome(
            record=record,
            relationship=relationship,
            status_code=status_code,
            penalized=penalized,
            penalty_seconds=self.penalty_seconds if penalized else 0.0,
            yielded=penalized,
            error=error,
        )


@lru_cache
def build_default_publisher() -> StreamPublisher:
    settings = get_settings()
    settings.require_stream()
    config = StreamConfig(
        api_key=settings.api_key,
        api_url=settings.api_url,
        device_id=settings.device_id,
        stream_name=settings.stream_name,
    )
    fetcher = StreamFetcher(httpx.Client(timeout=settings.http_timeout))
    return StreamPublisher(config=config, fetcher=fetcher, penalty_seconds=settings.penalty_seconds)
