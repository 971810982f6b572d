from __future__ import annotations
import json
import os
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Mapping, Optional

from services.errors import StateUnavailable
from settings import get_settings


class LocalStateStore:
    """Flat string maps keyed by scope, optionally persisted to a JSON file.

    With a persistence path every read goes back to disk, so another process on
    the same node observes the latest completed write.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._scopes: Dict[str, Dict[str, str]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)

    def get_state(self, scope: str) -> Dict[str, str]:
        with self._lock:
            if self.persistence_path:
                self._scopes = self._load_from_disk()
            return dict(self._scopes.get(scope, {}))

    def set_state(self, scope: str, state: Mapping[str, str]) -> None:
        for key, value in state.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"State entries must be strings, got {key!r}={value!r}.")

        with self._lock:
            if self.persistence_path:
                scopes = self._load_from_disk()
                scopes[scope] = dict(state)
                self._persist(scopes)
                self._scopes = scopes
            else:
                self._scopes[scope] = dict(state)

    def _persist(self, scopes: Dict[str, Dict[str, str]]) -> None:
        assert self.persistence_path is not None
        tmp_path = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        try:
            tmp_path.write_text(json.dumps(scopes, indent=2, sort_keys=True))
            os.replace(tmp_path, self.persistence_path)
        except OSError as exc:
            raise StateUnavailable(
                f"Failed to persist state store {self.name!r} to {self.persistence_path}"
            ) from exc

    def _load_from_disk(self) -> Dict[str, Dict[str, str]]:
        assert self.persistence_path is not None
        if not self.persistence_path.exists():
            return {}

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            raise StateUnavailable(
                f"Failed to read state store {self.name!r} from {self.persistence_path}"
            ) from exc

        if not isinstance(data, dict):
            raise StateUnavailable(
                f"State store {self.name!r} at {self.persistence_path} is not a JSON object."
            )
        return {
            str(scope): {str(key): str(value) for key, value in entries.items()}
            for scope, entries in data.items()
            if isinstance(entries, dict)
        }


@lru_cache
def build_default_state_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> LocalStateStore:
    settings = get_settings()
    store_name = settings.state_name if name is None else name
    store_path = settings.state_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return LocalStateStore(name=store_name, persistence_path=persistence)
