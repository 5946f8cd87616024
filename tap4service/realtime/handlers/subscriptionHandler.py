"""
Subscription Handler
====================

Handles the envelopes clients send on the ``message`` event.

Events received FROM clients:
  {type: "subscribe", customerId}      -- join customer_<id>
  {type: "subscribe", technicianId}    -- join technician_<id> + technicians
  {type: "ping"}                       -- answered with {type: "pong"}

Frames may arrive as JSON text or as an already-decoded object. Malformed
frames are logged and dropped; the connection stays open and the client's
polling loop reconciles anything it missed.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..socketServer import (
    MESSAGE_EVENT,
    TECHNICIANS_ROOM,
    customer_room,
    register_subscription,
    send_to_sid,
    sio,
    technician_room,
    unregister_subscription,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _decode_envelope(data: Any) -> dict[str, Any] | None:
    """Return the envelope as a dict, or None if it cannot be understood."""
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8", errors="replace")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return None
    if not isinstance(data, dict):
        return None
    return data


def _subscriber_id(value: Any) -> str | None:
    """Normalise a customerId / technicianId to its string form."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


# ---------------------------------------------------------------------------
# Envelope handlers
# ---------------------------------------------------------------------------

async def handle_subscribe(sid: str, envelope: dict[str, Any]) -> list[str]:
    """Join the session to the rooms named by its subscribe envelope.

    A repeated subscribe replaces the earlier one.

    Returns:
        The rooms joined (empty when the envelope names no subscriber).
    """
    customer_id = _subscriber_id(envelope.get("customerId"))
    technician_id = _subscriber_id(envelope.get("technicianId"))

    rooms: list[str] = []
    if technician_id:
        rooms += [technician_room(technician_id), TECHNICIANS_ROOM]
    if customer_id:
        rooms.append(customer_room(customer_id))
    if not rooms:
        logger.warning("Subscribe without customerId/technicianId from sid=%s", sid)
        return []

    for old_room in unregister_subscription(sid):
        await sio.leave_room(sid, old_room)
    for room in rooms:
        await sio.enter_room(sid, room)

    register_subscription(
        sid,
        rooms,
        {"customer_id": customer_id, "technician_id": technician_id},
    )
    logger.info("Subscribed sid=%s rooms=%s", sid, rooms)
    return rooms


async def handle_ping(sid: str) -> None:
    await send_to_sid(sid, {"type": "pong"})


@sio.on(MESSAGE_EVENT)
async def on_message(sid: str, data: Any) -> None:
    """Dispatch one client envelope by its ``type``."""
    envelope = _decode_envelope(data)
    if envelope is None:
        logger.warning("Dropping unparseable message from sid=%s", sid)
        return

    message_type = envelope.get("type")
    if message_type == "ping":
        await handle_ping(sid)
    elif message_type == "subscribe":
        await handle_subscribe(sid, envelope)
    else:
        logger.debug("Ignoring message type %r from sid=%s", message_type, sid)
