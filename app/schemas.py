"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import FlowRecord, Relationship
from services.poller import PollOutcome, PollState
from services.publisher import PublishOutcome


class EmittedRecord(BaseModel):
    """A record produced by the read path, routed to ``success``."""

    content: str = Field(..., description="Text form of the reading's value.")
    attributes: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: FlowRecord) -> "EmittedRecord":
        return cls(content=record.text(), attributes=dict(record.attributes))


class PollResponse(BaseModel):
    """Outcome of a single read invocation."""

    state: PollState
    yielded: bool = False
    yield_seconds: float = Field(default=0.0, ge=0)
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None
    error: Optional[str] = None
    records: List[EmittedRecord] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: PollOutcome) -> "PollResponse":
        return cls(
            state=outcome.state,
            yielded=outcome.yielded,
            yield_seconds=outcome.yield_seconds,
            cursor_before=outcome.cursor_before,
            cursor_after=outcome.cursor_after,
            error=outcome.error,
            records=[EmittedRecord.from_record(record) for record in outcome.records],
        )


class PublishResponse(BaseModel):
    """Outcome of publishing one record."""

    relationship: Relationship
    status_code: Optional[int] = Field(
        default=None, description="Status returned by the stream API, if it answered."
    )
    penalized: bool = False
    penalty_seconds: float = Field(default=0.0, ge=0)
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: PublishOutcome) -> "PublishResponse":
        return cls(
            relationship=outcome.relationship,
            status_code=outcome.status_code,
            penalized=outcome.penalized,
            penalty_seconds=outcome.penalty_seconds,
            error=outcome.error,
        )


class CursorResponse(BaseModel):
    stream_key: str
    start_time: Optional[str] = None
