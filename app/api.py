"""HTTP route definitions for the relays."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import ErrorResponse, ReadingBatchRequest, RootResponse
from models.records import Reading
from services.errors import InvalidReadingError, PublishError
from services.relay import RelayService, build_default_relay, parse_readings
from settings import RelayVariant

logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}

router = APIRouter()


def get_relay() -> RelayService:
    return build_default_relay()


def _parse_or_reject(payload: ReadingBatchRequest) -> list[Reading]:
    try:
        return parse_readings(payload.data)
    except InvalidReadingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get(
    "/",
    response_model=RootResponse,
    summary="Liveness endpoint.",
    status_code=status.HTTP_200_OK,
)
async def root() -> RootResponse:
    return RootResponse(ok=True)


async def post_temperature(
    payload: ReadingBatchRequest,
    relay: RelayService = Depends(get_relay),
) -> Response:
    readings = _parse_or_reject(payload)
    try:
        await relay.publish_each(readings)
    except PublishError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    logger.info("Accepted readings", extra={"reading_count": len(readings)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def post_data_sequence(
    payload: ReadingBatchRequest,
    relay: RelayService = Depends(get_relay),
) -> Response:
    readings = _parse_or_reject(payload)
    try:
        await relay.publish_batch(readings)
    except PublishError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    logger.info("Accepted reading sequence", extra={"reading_count": len(readings)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


_HANDLERS = {
    RelayVariant.temperature: (post_temperature, "Publish one message per reading."),
    RelayVariant.data_sequence: (post_data_sequence, "Publish the batch as one message."),
}


def build_ingest_router(variant: RelayVariant) -> APIRouter:
    """Router exposing the ingestion endpoint of ``variant``."""
    endpoint, summary = _HANDLERS[variant]
    ingest_router = APIRouter()
    ingest_router.add_api_route(
        variant.endpoint,
        endpoint,
        methods=["POST"],
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
        responses=_ERROR_RESPONSES,
        summary=summary,
    )
    return ingest_router
