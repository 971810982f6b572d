"""Exception hierarchy shared by the read and write paths."""

from __future__ import annotations


class StreamBridgeError(Exception):
    """Base class for errors raised by the stream bridge."""


class MalformedPayload(StreamBridgeError, ValueError):
    """A response body did not match the expected stream-values schema."""


class StateUnavailable(StreamBridgeError):
    """The persisted state store could not be read or written."""


class ConfigurationError(StreamBridgeError, ValueError):
    """Settings are missing or invalid."""
