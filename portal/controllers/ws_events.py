import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from portal import state
from portal.config import get_settings
from portal.events import FeedMessage
from portal.models.events import Event
from portal.services.feed import EventFeed
from portal.store import StoreError

router = APIRouter()

_logger = logging.getLogger("portal.ws.events")

HEARTBEAT_SEC = 25


async def _heartbeat(send: Callable[[FeedMessage], Awaitable[None]]) -> None:
    while True:
        await asyncio.sleep(HEARTBEAT_SEC)
        await send({"type": "ping"})


@router.websocket("/ws/events")
async def websocket_events(websocket: WebSocket):
    await websocket.accept()
    if state.store is None:
        await websocket.close(code=1011)
        return

    client = websocket.client.host if websocket.client else "-"
    send_lock = asyncio.Lock()

    async def send(message: FeedMessage) -> None:
        try:
            async with send_lock:
                await websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as e:
            _logger.debug("ws_events.send dropped client=%s err=%r", client, e)

    async def on_update(events: list[Event]) -> None:
        await send({"type": "events", "events": [e.model_dump() for e in events]})

    async def on_error(error: StoreError) -> None:
        await send({"type": "error", "detail": "Live updates interrupted, please reload"})

    feed = EventFeed(state.store, on_update=on_update, on_error=on_error, tz=get_settings().app.tzinfo)
    try:
        async with feed:
            _logger.info("ws_events.accept client=%s", client)
            heartbeat_task = asyncio.create_task(_heartbeat(send))
            try:
                while True:
                    data = await websocket.receive_text()
                    if data == "pong":
                        continue
            finally:
                heartbeat_task.cancel()
                await asyncio.gather(heartbeat_task, return_exceptions=True)
    except WebSocketDisconnect:
        pass
    except StoreError as e:
        _logger.warning("ws_events.unavailable client=%s err=%s", client, e)
        await websocket.close(code=1011)
    _logger.info("ws_events.close client=%s", client)
