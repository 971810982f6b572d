"""Domain models shared across services."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

Scalar = Union[int, float, str, bool, None]


class ScalarKind(str, Enum):
    integer = "integer"
    floating = "float"
    string = "string"
    boolean = "boolean"
    null = "null"


@dataclass(frozen=True, slots=True)
class ScalarValue:
    """A JSON scalar that remembers which JSON type it was decoded from."""

    kind: ScalarKind
    raw: Scalar = None

    @classmethod
    def from_json(cls, value: Any) -> "ScalarValue":
        if value is None:
            return cls(ScalarKind.null, None)
        # bool is a subclass of int, so it has to be checked first.
        if isinstance(value, bool):
            return cls(ScalarKind.boolean, value)
        if isinstance(value, int):
            return cls(ScalarKind.integer, value)
        if isinstance(value, float):
            return cls(ScalarKind.floating, value)
        if isinstance(value, str):
            return cls(ScalarKind.string, value)
        # Nested arrays and objects are kept as their compact JSON text.
        return cls(ScalarKind.string, json.dumps(value, separators=(",", ":")))

    @classmethod
    def string(cls, value: str) -> "ScalarValue":
        return cls(ScalarKind.string, value)

    def to_text(self) -> str:
        if self.kind is ScalarKind.null:
            return "null"
        if self.kind is ScalarKind.boolean:
            return "true" if self.raw else "false"
        if self.kind is ScalarKind.string:
            return str(self.raw)
        return repr(self.raw)

    def to_json(self) -> Scalar:
        return self.raw


def _frozen_fields(fields: Mapping[str, ScalarValue]) -> Mapping[str, ScalarValue]:
    return MappingProxyType(dict(fields))


@dataclass(frozen=True, slots=True)
class Reading:
    """A single timestamped data point from a device stream.

    ``timestamp`` is ``None`` only for readings built locally for publishing.
    ``extra_fields`` keeps any other keys the remote sent, in document order.
    """

    timestamp: Optional[datetime]
    value: ScalarValue
    extra_fields: Mapping[str, ScalarValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra_fields", _frozen_fields(self.extra_fields))


@dataclass(frozen=True, slots=True)
class StreamWindow:
    """One fetch response: the readings plus the range the remote answered for."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None
    values: Tuple[Reading, ...] = ()


class Relationship(str, Enum):
    """Output routes a record can be transferred to."""

    success = "success"
    failure = "failure"


class ProvenanceEvent(str, Enum):
    create = "CREATE"
    send = "SEND"


@dataclass(slots=True)
class FlowRecord:
    """Unit of data exchanged with the pipeline: opaque content plus attributes."""

    content: bytes
    attributes: dict[str, str] = field(default_factory=dict)
    relationship: Optional[Relationship] = None
    provenance: Optional[ProvenanceEvent] = None

    def text(self) -> str:
        return self.content.decode("utf-8")
