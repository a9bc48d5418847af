import asyncio
import json
import logging
from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from redis.exceptions import RedisError

from portal import state
from portal.errors import ServiceUnavailableError

router = APIRouter()

_logger = logging.getLogger("portal.ws.identity")


@router.websocket("/ws/identity")
async def websocket_identity(websocket: WebSocket, token: Optional[str] = None):
    """Stream the session's identity: once on connect, then on every change."""
    await websocket.accept()
    provider = state.identity_provider
    if provider is None or state.event_bus is None:
        await websocket.close(code=1011)
        return
    if not token:
        await websocket.send_text(json.dumps({"type": "identity_changed", "identity": None}))
        await websocket.close(code=1008)
        return

    channel = state.event_bus.identity_channel(token)
    pubsub = provider.redis_client.pubsub()

    async def send_updates():
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "message":
                    await websocket.send_text(message["data"])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _logger.debug("ws_identity.forward stopped err=%r", e)

    update_task: Optional[asyncio.Task] = None
    try:
        await pubsub.subscribe(channel)
        identity = await provider.current_identity(token)
        await websocket.send_text(json.dumps({"type": "identity_changed", "identity": provider.payload(identity)}))
        update_task = asyncio.create_task(send_updates())
        while True:
            data = await websocket.receive_text()
            if data == "pong":
                continue
    except WebSocketDisconnect:
        pass
    except (RedisError, ServiceUnavailableError) as e:
        _logger.warning("ws_identity.unavailable err=%r", e)
        await websocket.close(code=1011)
    finally:
        if update_task is not None:
            update_task.cancel()
            await asyncio.gather(update_task, return_exceptions=True)
        try:
            await pubsub.unsubscribe(channel)
        except RedisError as e:
            _logger.debug("ws_identity.unsubscribe failed err=%r", e)
        finally:
            if hasattr(pubsub, "aclose"):
                await pubsub.aclose()
            else:
                await pubsub.close()
