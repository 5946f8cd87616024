"""
Tap4Service Real-time Handlers
==============================

Importing this module registers the ``message`` event handler with the
shared Socket.IO server instance.
"""

from __future__ import annotations

from . import subscriptionHandler

__all__ = [
    "subscriptionHandler",
]
