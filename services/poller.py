"""Read path: one incremental fetch of a device stream per invocation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Callable, List, Optional

import httpx

from datastore.state_store import build_default_state_store
from models.records import FlowRecord
from services.codec import ValueCodec, format_instant
from services.cursor import CursorStore, stream_key_for
from services.emitter import RecordEmitter
from services.errors import MalformedPayload, StateUnavailable
from services.fetcher import FetchSuccess, RemoteError, StreamFetcher, build_url
from settings import get_settings

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    """Stages of a single read invocation."""

    idle = "idle"
    cursor_loaded = "cursor_loaded"
    fetching = "fetching"
    fetch_failed = "fetch_failed"
    parse_failed = "parse_failed"
    parsed = "parsed"
    emitting = "emitting"
    cursor_advanced = "cursor_advanced"
    cursor_failed = "cursor_failed"


@dataclass(frozen=True)
class StreamConfig:
    api_key: str
    api_url: str
    device_id: str
    stream_name: str
    start_time_ago: timedelta = timedelta(0)

    @property
    def stream_key(self) -> str:
        return stream_key_for(self.api_url, self.device_id, self.stream_name)


@dataclass
class PollOutcome:
    state: PollState
    url: Optional[str] = None
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None
    records: List[FlowRecord] = field(default_factory=list)
    yielded: bool = False
    yield_seconds: float = 0.0
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StreamPoller:
    """Fetches everything after the stored cursor and advances it to the window end.

    The cursor moves to the window's ``end``, not to the newest reading's
    timestamp. Readings stamped between the two on the remote side are skipped.

    Callers must not run two invocations for the same stream concurrently; the
    cursor is read and written without locking.
    """

    def __init__(
        self,
        config: StreamConfig,
        fetcher: StreamFetcher,
        cursors: CursorStore,
        codec: Optional[ValueCodec] = None,
        emitter: Optional[RecordEmitter] = None,
        yield_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.cursors = cursors
        self.codec = codec or ValueCodec()
        self.emitter = emitter or RecordEmitter(config.device_id, config.stream_name)
        self.yield_seconds = yield_seconds
        self._clock = clock

    @property
    def _log_context(self) -> dict:
        return {"device_id": self.config.device_id, "stream_name": self.config.stream_name}

    def initial_start_time(self) -> Optional[str]:
        ago = self.config.start_time_ago
        if ago <= timedelta(0):
            return None
        return format_instant(self._clock() - ago)

    def load_start_time(self) -> Optional[str]:
        """Stored cursor, falling back to the configured look-back window."""
        try:
            cursor = self.cursors.get_cursor(self.config.stream_key)
        except StateUnavailable as exc:
            logger.warning(
                "Failed to retrieve the last start time from the state store",
                exc_info=exc,
                extra=self._log_context,
            )
            cursor = None
        return cursor or self.initial_start_time()

    def run_once(self) -> PollOutcome:
        """Run one invocation. Failures are logged and turned into a yield."""
        outcome = PollOutcome(state=PollState.idle)
        try:
            return self._run(outcome)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Unexpected failure while polling stream",
                extra={**self._log_context, "state": outcome.state.value},
            )
            return self._fail(outcome, outcome.state, str(exc) or type(exc).__name__)

    def _run(self, outcome: PollOutcome) -> PollOutcome:
        start_time = self.load_start_time()
        outcome.cursor_before = start_time
        self._transition(outcome, PollState.cursor_loaded, cursor=start_time)

        url = build_url(
            self.config.api_url,
            self.config.device_id,
            self.config.stream_name,
            start_time,
        )
        outcome.url = url
        self._transition(outcome, PollState.fetching)

        result = self.fetcher.fetch(url, self.config.api_key)
        if not isinstance(result, FetchSuccess):
            if isinstance(result, RemoteError):
                reason = f"HTTP {result.status_code}: {result.message}"
            else:
                reason = f"Transport error: {result.message}"
            return self._fail(outcome, PollState.fetch_failed, reason)

        try:
            window = self.codec.parse_window(result.body)
        except MalformedPayload as exc:
            logger.error(
                "Stream API response could not be parsed",
                exc_info=exc,
                extra={**self._log_context, "url": url, "reason": str(exc)},
            )
            return self._fail(outcome, PollState.parse_failed, str(exc))
        if window.end is None:
            logger.error(
                "Stream window has no end time",
                extra={**self._log_context, "url": url, "record_count": len(window.values)},
            )
            return self._fail(outcome, PollState.parse_failed, "Stream window has no end time")
        self._transition(outcome, PollState.parsed, record_count=len(window.values))

        self._transition(outcome, PollState.emitting)
        records = list(self.emitter.emit(window))

        new_cursor = format_instant(window.end)
        try:
            self.cursors.set_cursor(self.config.stream_key, new_cursor)
        except StateUnavailable as exc:
            logger.error(
                "Failed to persist stream cursor; discarding emitted records",
                exc_info=exc,
                extra={**self._log_context, "cursor": new_cursor, "record_count": len(records)},
            )
            return self._fail(outcome, PollState.cursor_failed, str(exc))

        outcome.records = records
        outcome.cursor_after = new_cursor
        self._transition(
            outcome, PollState.cursor_advanced, cursor=new_cursor, record_count=len(records)
        )
        return outcome

    def _transition(self, outcome: PollOutcome, state: PollState, **context) -> None:
        outcome.state = state
        logger.debug(
            "Poll state changed",
            extra={**self._log_context, "state": state.value, **context},
        )

    def _fail(self, outcome: PollOutcome, state: PollState, reason: str) -> PollOutcome:
        outcome.state = state
        outcome.records = []
        outcome.cursor_after = outcome.cursor_before
        outcome.yielded = True
        outcome.yield_seconds = self.yield_seconds
        outcome.error = reason
        logger.warning(
            "Yielding stream poll",
            extra={**self._log_context, "state": state.value, "reason": reason},
        )
        return outcome


@lru_cache
def build_default_poller() -> StreamPoller:
    """Factory that wires the poller from settings."""
    settings = get_settings()
    settings.require_stream()
    config = StreamConfig(
        api_key=settings.api_key,
        api_url=settings.api_url,
        device_id=settings.device_id,
        stream_name=settings.stream_name,
        start_time_ago=settings.start_time_ago,
    )
    fetcher = StreamFetcher(httpx.Client(timeout=settings.http_timeout))
    cursors = CursorStore(build_default_state_store())
    return StreamPoller(
        config=config,
        fetcher=fetcher,
        cursors=cursors,
        yield_seconds=settings.yield_seconds,
    )
