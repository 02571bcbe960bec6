"""WebSocket endpoint for real-time navigation events.

Clients receive event messages (``progress``, ``step_advanced``, ``reroute``,
``arrival``, ``camera``) and may also push raw fixes upstream as JSON
objects shaped like ``FixIn``. ``?types=progress,reroute`` narrows the
stream to the listed kinds.
"""

import asyncio
import logging

import orjson
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from navtrack.core.session import NavigationNotStarted
from navtrack.schemas.navigation import FixIn

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None
session = None


def _wanted(types: str | None) -> set[str] | None:
    if not types:
        return None
    return {t.strip() for t in types.split(",") if t.strip()}


async def _send_events(websocket: WebSocket, queue: asyncio.Queue, kinds: set[str] | None) -> None:
    for kind, message in broadcaster.snapshot().items():
        if kinds is None or kind in kinds:
            snap = orjson.loads(message)
            snap["type"] = "snapshot"
            snap["kind"] = kind
            await websocket.send_bytes(orjson.dumps(snap))

    while True:
        message = await queue.get()
        if kinds is not None and orjson.loads(message)["type"] not in kinds:
            continue
        await websocket.send_bytes(message)


async def _receive_fixes(websocket: WebSocket) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            fix = FixIn.model_validate_json(raw)
        except ValidationError as e:
            detail = e.errors(include_url=False, include_context=False)
            await websocket.send_bytes(orjson.dumps({"type": "error", "detail": detail}))
            continue
        if session is None:
            continue
        try:
            # Outputs come back through the broadcaster like any other fix
            session.process_fix(fix.to_location())
        except NavigationNotStarted:
            await websocket.send_bytes(orjson.dumps({"type": "error", "detail": "No active route"}))


@router.websocket("/ws/navigation")
async def navigation_ws(websocket: WebSocket, types: str | None = Query(None)) -> None:
    await websocket.accept()

    if broadcaster is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    queue = broadcaster.subscribe()
    tasks = [
        asyncio.create_task(_send_events(websocket, queue, _wanted(types))),
        asyncio.create_task(_receive_fixes(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("WebSocket error", exc_info=exc)
    except asyncio.CancelledError:
        pass
    finally:
        for task in tasks:
            task.cancel()
        broadcaster.unsubscribe(queue)
