"""Tap4Service API -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware and the error
envelope, registers all API route modules under the /api prefix, and mounts
the Socket.IO ASGI application used for live request updates.

Run with::

    uvicorn tap4service.main:app --host 0.0.0.0 --port 5000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tap4service.api.errors import register_exception_handlers
from tap4service.core.config import settings
from tap4service.core.database import Database
from tap4service.core.logging import setup_logging

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Configure logging and build the ``Database`` handle.
      - Create missing tables when ``db_create_tables`` is on.
      - Import realtime handlers to register Socket.IO event listeners.

    Shutdown:
      - Dispose of the engine and its connection pool.
    """
    setup_logging(settings.log_level)

    # Importing handlers is sufficient to register all Socket.IO events
    from tap4service.realtime import handlers  # noqa: F401

    database = Database.from_settings(settings)
    if settings.db_create_tables:
        await database.create_all()
    app.state.db = database
    logger.info("%s %s started", settings.app_name, settings.app_version)

    yield

    await database.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

_origins = [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness checks."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router already defines its own prefix (e.g. /requests, /customers)
# and tags.  We mount them under the shared /api prefix so the full paths
# become /api/requests, /api/customers, etc.
# ---------------------------------------------------------------------------

from tap4service.api.routes import (  # noqa: E402
    customers,
    requests,
    session,
    technicians,
)

_prefix = settings.api_prefix

app.include_router(customers.router, prefix=_prefix)
app.include_router(technicians.router, prefix=_prefix)
app.include_router(technicians.profile_router, prefix=_prefix)
app.include_router(session.router, prefix=_prefix)
app.include_router(requests.router, prefix=_prefix)


# ---------------------------------------------------------------------------
# Mount Socket.IO ASGI application
# ---------------------------------------------------------------------------

from tap4service.realtime.socketServer import socket_app  # noqa: E402

app.mount("/ws", socket_app)
