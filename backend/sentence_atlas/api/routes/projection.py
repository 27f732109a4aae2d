"""Projection endpoints streaming embedding + UMAP progress to clients.

Endpoints:
    stream_run(payload, service): Start a run and stream its events as newline-delimited JSON.
    projection_socket(websocket, service): Accept run messages over a WebSocket and push events back.
    extractor_status(service): Report the resident extractor and the current job id.

Helpers:
    _forward(websocket, channel): Relay channel events to a WebSocket in emit order.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from sentence_atlas.api.deps import get_run_service
from sentence_atlas.schemas import ErrorEvent, ExtractorStatus, ProjectionRequest
from sentence_atlas.services.events import QueueEventChannel, to_wire
from sentence_atlas.services.runs import RunService

router = APIRouter(prefix="/projection", tags=["projection"])

_LOGGER = logging.getLogger(__name__)


@router.post("/runs")
async def stream_run(
    payload: ProjectionRequest,
    service: RunService = Depends(get_run_service),
) -> StreamingResponse:
    channel = QueueEventChannel()
    task = service.start_run(payload, channel)
    task.add_done_callback(lambda _: channel.close())

    async def _body() -> AsyncIterator[str]:
        async for event in channel.stream():
            yield json.dumps(to_wire(event)) + "\n"

    return StreamingResponse(_body(), media_type="application/x-ndjson")


@router.get("/extractor", response_model=ExtractorStatus, response_model_by_alias=True)
async def extractor_status(service: RunService = Depends(get_run_service)) -> ExtractorStatus:
    return service.status()


async def _forward(websocket: WebSocket, channel: QueueEventChannel) -> None:
    try:
        async for event in channel.stream():
            await websocket.send_json(to_wire(event))
    except WebSocketDisconnect:
        _LOGGER.debug("Projection socket closed while forwarding events")


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid run request."


@router.websocket("/ws")
async def projection_socket(
    websocket: WebSocket,
    service: RunService = Depends(get_run_service),
) -> None:
    await websocket.accept()
    channel = QueueEventChannel()
    sender = asyncio.create_task(_forward(websocket, channel))
    last_job: int | None = None
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message: Any = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict) or message.get("type") != "run":
                continue
            try:
                request = ProjectionRequest.model_validate(message)
            except ValidationError as exc:
                run_id = message.get("runId", message.get("run_id"))
                if not isinstance(run_id, (int, str)):
                    run_id = ""
                channel.emit(ErrorEvent(run_id=run_id, message=_validation_message(exc)))
                continue
            service.start_run(request, channel)
            last_job = service.supervisor.active_job
    except WebSocketDisconnect:
        _LOGGER.debug("Projection socket disconnected")
    finally:
        # Nobody is listening any more.
        if last_job is not None:
            service.abandon(last_job)
        channel.close()
        sender.cancel()
        with suppress(asyncio.CancelledError):
            await sender
