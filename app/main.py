from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api import router
from logging_config import configure_logging
from services.errors import ConfigurationError
from services.poller import build_default_poller
from services.publisher import build_default_publisher


def _shutdown_clients() -> None:
    for factory in (build_default_poller, build_default_publisher):
        if factory.cache_info().currsize:
            factory().fetcher.close()
        factory.cache_clear()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    try:
        yield
    finally:
        _shutdown_clients()


async def configuration_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Device Stream Bridge",
        description="Polls a device data stream into records and publishes records as stream values.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.include_router(router)
    return app

app = create_app()
