"""
Realtime Service: Socket.IO broadcast to storefront and admin clients.

Clients authenticate on connect with the same JWT used for HTTP and join
their personal room `user:<id>`. Emits are fire-and-forget: a failed
broadcast is logged and never fails the request that triggered it.
"""
import asyncio
import logging
from typing import Any, Optional

import socketio

from app.services.auth_service import ADMIN_COOKIE, USER_COOKIE, decode_token
from app.utils.config import settings

logger = logging.getLogger(__name__)

# Strong references to in-flight broadcasts; the loop only keeps weak ones
_pending_emits = set()


def _client_manager():
    if settings.SOCKET_USE_REDIS:
        from app.services.cache_service import cache_service
        return socketio.AsyncRedisManager(cache_service.build_url())
    return None


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.CORS_ORIGINS,
    client_manager=_client_manager(),
    logger=False,
    engineio_logger=False,
)


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def _token_from_environ(environ: dict, auth: Optional[dict]) -> Optional[str]:
    if auth and auth.get("token"):
        return auth["token"]
    cookie_header = environ.get("HTTP_COOKIE", "")
    for part in cookie_header.split(";"):
        name, _, value = part.strip().partition("=")
        if name in (USER_COOKIE, ADMIN_COOKIE) and value:
            return value
    return None


@sio.event
async def connect(sid, environ, auth=None):
    token = _token_from_environ(environ, auth)
    payload = decode_token(token) if token else None
    if payload and payload.get("id"):
        await sio.enter_room(sid, user_room(payload["id"]))
        logger.debug(f"Socket {sid} joined {user_room(payload['id'])}")
    # Anonymous clients still receive global catalog broadcasts
    return True


@sio.event
async def disconnect(sid):
    logger.debug(f"Socket {sid} disconnected")


async def _emit(event: str, data: Any, room: Optional[str] = None):
    try:
        await sio.emit(event, data, room=room)
    except Exception as e:
        logger.warning(f"Socket emit '{event}' failed: {e}")


def emit_global(event: str, data: Any):
    """Schedule a broadcast to every connected client."""
    _schedule(_emit(event, data))


def emit_to_user(user_id: str, event: str, data: Any):
    """Schedule an emit to a single user's room."""
    _schedule(_emit(event, data, room=user_room(user_id)))


def _schedule(coro):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        return
    task = loop.create_task(coro)
    _pending_emits.add(task)
    task.add_done_callback(_pending_emits.discard)
