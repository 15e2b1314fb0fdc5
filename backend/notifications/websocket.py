"""
WebSocket endpoint for real-time notification delivery (Redis pub/sub relay).
"""

import asyncio

import redis.asyncio as aioredis
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from api.deps import DEV_USER_ID
from core.config import get_settings
from core.security import decode_access_token
from notifications.service import notification_channel

settings = get_settings()
router = APIRouter()


async def authenticate_ws(token: str) -> dict | None:
    """Validate JWT token from WebSocket query param."""
    if settings.debug:
        return {"sub": DEV_USER_ID, "role": "CUSTOMER"}
    return decode_access_token(token)


@router.websocket("/ws/notifications")
async def websocket_notifications(websocket: WebSocket, token: str = Query(...)):
    """
    Stream the caller's notifications as they are created.

    Connect: ws://host/ws/notifications?token=<jwt>

    Messages sent to client:
        {"type": "notification", "payload": {...}}
        {"type": "heartbeat", "payload": {}}
    """
    user = await authenticate_ws(token)
    if user is None or not user.get("sub"):
        await websocket.close(code=4001, reason="Unauthorized")
        return

    await websocket.accept()

    channel = notification_channel(user["sub"])
    redis = aioredis.from_url(settings.redis_url)
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)

    try:

        async def listen_redis():
            async for message in pubsub.listen():
                if message["type"] == "message":
                    try:
                        await websocket.send_text(message["data"].decode())
                    except (WebSocketDisconnect, RuntimeError):
                        break

        async def send_heartbeat():
            while True:
                await asyncio.sleep(30)
                try:
                    await websocket.send_json({"type": "heartbeat", "payload": {}})
                except (WebSocketDisconnect, RuntimeError):
                    break

        await asyncio.gather(listen_redis(), send_heartbeat())

    except WebSocketDisconnect:
        pass
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        await redis.aclose()
