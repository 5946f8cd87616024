"""
WebSocket Server
================

Socket.IO server that keeps customer and technician views of service
requests in sync. Every frame in either direction travels on the default
``message`` event as a JSON envelope with a ``type`` field.

Architecture:
  - python-socketio AsyncServer mounted as ASGI middleware on FastAPI
  - Optional Redis client manager so several workers share rooms
  - No authentication on connect; a client declares interest with a
    ``subscribe`` envelope carrying ``customerId`` or ``technicianId``
  - Room-based routing: ``customer_<id>``, ``technician_<id>`` and the
    shared ``technicians`` room that receives new pool jobs

Connection lifecycle:
  1. Client connects (no auth payload needed)
  2. Client sends ``{type: "subscribe", customerId | technicianId}``
  3. Server joins the session to its personal room(s)
  4. Client sends ``{type: "ping"}`` periodically; server answers ``pong``
  5. On disconnect, the registry entry is dropped (rooms go with the sid)

Delivery is best effort. Nothing is persisted or replayed; clients that
miss a push catch up by re-fetching the list endpoints.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import socketio

from tap4service.core.config import settings

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "message"
TECHNICIANS_ROOM = "technicians"


# ---------------------------------------------------------------------------
# Socket.IO server instance
# ---------------------------------------------------------------------------

# Redis-backed pub/sub only when several server processes must share rooms
client_manager: Optional[socketio.AsyncRedisManager] = (
    socketio.AsyncRedisManager(settings.ws_redis_url, write_only=False)
    if settings.ws_redis_url
    else None
)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.ws_cors_allowed_origins,
    client_manager=client_manager,
    logger=False,
    engineio_logger=False,
    ping_timeout=settings.ws_ping_timeout,
    ping_interval=settings.ws_ping_interval,
    max_http_buffer_size=64_000,
)


# ---------------------------------------------------------------------------
# Subscriber registry: maps room -> set of sids, and sid -> subscription.
# A room name doubles as the subscriber key (customer_7, technician_3).
# ---------------------------------------------------------------------------

_room_sids: dict[str, set[str]] = {}
_sid_meta: dict[str, dict[str, Any]] = {}


def customer_room(customer_id: int | str) -> str:
    return f"customer_{customer_id}"


def technician_room(technician_id: int | str) -> str:
    return f"technician_{technician_id}"


def get_room_sids(room: str) -> set[str]:
    """Return all session IDs subscribed under a personal room."""
    return _room_sids.get(room, set())


def get_sid_meta(sid: str) -> dict[str, Any] | None:
    """Return the subscription metadata for a given session ID."""
    return _sid_meta.get(sid)


def register_subscription(sid: str, rooms: list[str], meta: dict[str, Any]) -> None:
    """Track a subscription in the in-process registry."""
    for room in rooms:
        _room_sids.setdefault(room, set()).add(sid)
    _sid_meta[sid] = {**meta, "rooms": list(rooms)}


def unregister_subscription(sid: str) -> list[str]:
    """Remove a session from the registry. Returns the rooms it held."""
    meta = _sid_meta.pop(sid, None)
    if meta is None:
        return []
    rooms: list[str] = meta["rooms"]
    for room in rooms:
        room_set = _room_sids.get(room)
        if room_set:
            room_set.discard(sid)
            if not room_set:
                del _room_sids[room]
    return rooms


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> bool:
    logger.info("Client connected: sid=%s", sid)
    return True


@sio.event
async def disconnect(sid: str, *args: Any) -> None:
    """Drop the session's subscription; Socket.IO clears its rooms itself."""
    rooms = unregister_subscription(sid)
    if rooms:
        logger.info("Disconnected: sid=%s rooms=%s", sid, rooms)
    else:
        logger.info("Disconnected: sid=%s (never subscribed)", sid)


# ---------------------------------------------------------------------------
# High-level send helpers (used by the notifier)
# ---------------------------------------------------------------------------

async def send_to_room(room: str, data: dict[str, Any]) -> None:
    """Send one envelope to every session in ``room``."""
    await sio.emit(MESSAGE_EVENT, data, room=room)
    logger.debug("Sent %s to room=%s", data.get("type"), room)


async def send_to_customer(customer_id: int, data: dict[str, Any]) -> None:
    await send_to_room(customer_room(customer_id), data)


async def send_to_technician(technician_id: int, data: dict[str, Any]) -> None:
    await send_to_room(technician_room(technician_id), data)


async def broadcast_to_technicians(data: dict[str, Any]) -> None:
    """Send to every subscribed technician (new jobs in the pool)."""
    await send_to_room(TECHNICIANS_ROOM, data)


async def send_to_sid(sid: str, data: dict[str, Any]) -> None:
    await sio.emit(MESSAGE_EVENT, data, to=sid)


# ---------------------------------------------------------------------------
# ASGI app for mounting onto FastAPI
# ---------------------------------------------------------------------------

socket_app = socketio.ASGIApp(
    socketio_server=sio,
    socketio_path="/ws/socket.io",
)
