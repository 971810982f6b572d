"""HTTP route definitions for the service."""

from __future__ import annotations

from threading import Lock

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from app.schemas import CursorResponse, PollResponse, PublishResponse
from models.records import FlowRecord, Relationship
from services.errors import StateUnavailable
from services.poller import StreamPoller, build_default_poller
from services.publisher import StreamPublisher, build_default_publisher

router = APIRouter()

# At most one read invocation per stream at a time within this process.
_poll_lock = Lock()


def get_poller() -> StreamPoller:
    return build_default_poller()


def get_publisher() -> StreamPublisher:
    return build_default_publisher()


@router.post(
    "/streams/poll",
    response_model=PollResponse,
    summary="Fetch new readings since the stored cursor and emit them as records.",
)
def poll_stream(poller: StreamPoller = Depends(get_poller)) -> PollResponse:
    if not _poll_lock.acquire(blocking=False):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A poll for this stream is already running.",
        )
    try:
        outcome = poller.run_once()
    finally:
        _poll_lock.release()
    return PollResponse.from_outcome(outcome)


@router.put(
    "/streams/value",
    response_model=PublishResponse,
    summary="Publish the request body as a new stream value.",
)
async def publish_value(
    request: Request,
    response: Response,
    publisher: StreamPublisher = Depends(get_publisher),
) -> PublishResponse:
    record = FlowRecord(content=await request.body())
    outcome = await run_in_threadpool(publisher.publish, record)

    if outcome.relationship is Relationship.failure:
        response.status_code = (
            status.HTTP_502_BAD_GATEWAY if outcome.penalized else status.HTTP_400_BAD_REQUEST
        )
    return PublishResponse.from_outcome(outcome)


@router.get(
    "/streams/cursor",
    response_model=CursorResponse,
    summary="Show the persisted start time for the configured stream.",
)
def get_cursor(poller: StreamPoller = Depends(get_poller)) -> CursorResponse:
    stream_key = poller.config.stream_key
    try:
        start_time = poller.cursors.get_cursor(stream_key)
    except StateUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return CursorResponse(stream_key=stream_key, start_time=start_time)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
