from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import build_ingest_router, router
from logging_config import configure_logging
from services.relay import build_default_relay
from settings import RelayVariant, get_relay_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    relay = build_default_relay()
    logger.info("Relay started", extra={"topic": relay.topic.path})
    try:
        yield
    finally:
        relay.shutdown()
        build_default_relay.cache_clear()


def _error_response(status_code: int, message: str) -> JSONResponse:
    if status_code >= 500:
        logger.error("Request failed", extra={"status": status_code, "reason": message})
    return JSONResponse(status_code=status_code, content={"error": message})


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return _error_response(status.HTTP_400_BAD_REQUEST, f"{request.method} not allowed")
    return _error_response(exc.status_code, str(exc.detail))


async def _validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "invalid request body"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "invalid value")
        message = f"{location}: {detail}" if location else detail
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


async def _unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal server error"},
    )


def create_app(variant: Optional[RelayVariant] = None) -> FastAPI:
    """Build the relay application; the variant defaults to ``RELAY_VARIANT``."""
    configure_logging()
    if variant is None:
        variant = get_relay_settings().variant
    app = FastAPI(
        title=f"Reading relay ({variant.value})",
        description="Relays batches of readings from HTTP to a Pub/Sub topic.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
    app.include_router(router)
    app.include_router(build_ingest_router(variant))
    logger.info("Relay configured", extra={"variant": variant.value})
    return app
