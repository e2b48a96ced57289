"""
Doris Webhook - Route Handlers

Handles ``/health`` and the ``/video`` ingestion endpoint.
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from ..config import Settings
from ..models import HealthResponse, StreamLoadResult, VideoEvent, VideoRecord, VideoResponse
from ..services import StreamLoadClient, StreamLoadError


logger = structlog.get_logger(__name__)
router = APIRouter()

# nginx's "client closed request"
STATUS_CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """The caller went away before the load call finished."""


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_load_client(request: Request) -> StreamLoadClient:
    return request.app.state.load_client


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check for load balancers."""
    return HealthResponse()


@router.post("/video", response_model=VideoResponse, tags=["Ingestion"])
async def ingest_video(
    request: Request,
    load_client: StreamLoadClient = Depends(get_load_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Write one video event to Doris.

    Body: ``{"project": ..., "event": ..., "userAgent": ...}`` as
    ``application/json``. Load failures come back as 502; nothing is
    retried or queued.
    """
    try:
        return await _handle_video(request, load_client, settings)
    except HTTPException:
        raise
    except (ClientDisconnect, ClientDisconnected):
        logger.warning("client_disconnected", path=request.url.path)
        return Response(status_code=STATUS_CLIENT_CLOSED_REQUEST)
    except Exception:
        logger.exception("video_handler_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


async def _handle_video(
    request: Request,
    load_client: StreamLoadClient,
    settings: Settings,
) -> VideoResponse:
    event = await _parse_event(request)

    record = VideoRecord.from_event(event)
    data = record.to_stream_load_line()

    if settings.debug:
        logger.debug("processing_video_event", project=event.project, event_name=event.event)

    try:
        result = await _submit_until_disconnect(request, load_client, data)
    except StreamLoadError as e:
        logger.error("stream_load_failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    logger.info(
        "video_ingested",
        project=event.project,
        event_name=event.event,
        label=result.label,
        loaded_rows=result.number_loaded_rows,
    )
    return VideoResponse(label=result.label)


async def _parse_event(request: Request) -> VideoEvent:
    """Validate content type and body before anything reaches Doris."""
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != "application/json":
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported Content-Type: {content_type or 'none'}. Use 'application/json'.",
        )

    try:
        body = await request.json()
    except ValueError as e:
        logger.warning("invalid_json_body", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid request body: expected a JSON object",
        )

    try:
        return VideoEvent.model_validate(body)
    except ValidationError as e:
        logger.warning("request_validation_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid request body: {_describe(e)}",
        )


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


async def _submit_until_disconnect(
    request: Request,
    load_client: StreamLoadClient,
    data: bytes,
) -> StreamLoadResult:
    """
    Run the load call, cancelling it if the caller disconnects first.
    """
    submit = asyncio.ensure_future(load_client.submit(data))
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({submit, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not submit.done():
            submit.cancel()

    if submit in done:
        return submit.result()

    watcher.result()
    raise ClientDisconnected()


async def _wait_for_disconnect(request: Request) -> None:
    # The body has been read, so the next message is the disconnect
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return
