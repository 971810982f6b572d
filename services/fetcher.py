"""HTTP access to the device stream API with outcome classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-KEY"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True)
class FetchSuccess:
    body: bytes
    status_code: int = 200


@dataclass(frozen=True)
class RemoteError:
    """Non-2xx answer; the next scheduled invocation is the retry."""

    status_code: int
    message: str


@dataclass(frozen=True)
class TransportError:
    """Connection, timeout or protocol failure before a response arrived."""

    cause: BaseException

    @property
    def message(self) -> str:
        return str(self.cause) or type(self.cause).__name__


RawResult = Union[FetchSuccess, RemoteError, TransportError]


def _stream_base(base_url: str, device_id: str, stream_name: str) -> str:
    return f"{base_url.rstrip('/')}/devices/{device_id}/streams/{stream_name}"


def build_url(
    base_url: str,
    device_id: str,
    stream_name: str,
    start_time: Optional[str] = None,
) -> str:
    """URL of the stream's values, bounded below by ``start_time`` when given.

    ``start_time`` is appended as-is, the API accepts the raw ISO-8601 text.
    """
    url = f"{_stream_base(base_url, device_id, stream_name)}/values"
    if start_time:
        url = f"{url}?start={start_time}"
    return url


def build_value_url(base_url: str, device_id: str, stream_name: str) -> str:
    return f"{_stream_base(base_url, device_id, stream_name)}/value"


def _reason(response: httpx.Response) -> str:
    text = response.text.strip()
    if text:
        return text
    return response.reason_phrase or f"HTTP {response.status_code}"


class StreamFetcher:
    """Performs exactly one request per call and never retries."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client

    def close(self) -> None:
        self._client.close()

    def fetch(self, url: str, api_key: str) -> RawResult:
        return self.send("GET", url, api_key)

    def send(
        self,
        method: str,
        url: str,
        api_key: str,
        body: Optional[bytes] = None,
    ) -> RawResult:
        headers = {API_KEY_HEADER: api_key}
        if body is not None:
            headers["Content-Type"] = JSON_CONTENT_TYPE

        try:
            response = self._client.request(method, url, headers=headers, content=body)
        except httpx.RequestError as exc:
            logger.error(
                "Request to stream API failed",
                exc_info=exc,
                extra={"url": url, "reason": type(exc).__name__},
            )
            return TransportError(cause=exc)

        if response.is_success:
            return FetchSuccess(body=response.content, status_code=response.status_code)

        message = _reason(response)
        logger.error(
            "Stream API returned an error",
            extra={"url": url, "status_code": response.status_code, "reason": message},
        )
        return RemoteError(status_code=response.status_code, message=message)
