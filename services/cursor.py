"""Per-stream cursor persisted in the state store."""

from __future__ import annotations

from typing import Optional

from datastore.state_store import LocalStateStore

CURSOR_KEY = "startTime"


def stream_key_for(api_url: str, device_id: str, stream_name: str) -> str:
    """Scope key for one configured stream endpoint."""
    return f"{api_url.rstrip('/')}/devices/{device_id}/streams/{stream_name}"


class CursorStore:
    """Reads and advances the last-seen ``startTime`` of a stream."""

    def __init__(self, store: LocalStateStore) -> None:
        self.store = store

    def get_cursor(self, stream_key: str) -> Optional[str]:
        # StateUnavailable propagates; callers decide whether it is fatal.
        value = self.store.get_state(stream_key).get(CURSOR_KEY)
        return value or None

    def set_cursor(self, stream_key: str, value: str) -> None:
        state = self.store.get_state(stream_key)
        state[CURSOR_KEY] = value
        self.store.set_state(stream_key, state)
