"""
Tap4Service Real-time Module
============================

Socket.IO server and the handler for client subscribe / ping envelopes.

Usage in FastAPI app startup::

    from tap4service.realtime import socket_app
    app.mount("/ws", socket_app)

The ``handlers`` sub-package registers its Socket.IO event handlers as a
side-effect of import.
"""

from __future__ import annotations

from .socketServer import (
    broadcast_to_technicians,
    send_to_customer,
    send_to_room,
    send_to_technician,
    sio,
    socket_app,
)

# Importing handlers registers the Socket.IO event listeners
from . import handlers  # noqa: F401

__all__ = [
    "sio",
    "socket_app",
    "send_to_room",
    "send_to_customer",
    "send_to_technician",
    "broadcast_to_technicians",
    "handlers",
]
