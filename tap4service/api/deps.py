"""
Shared FastAPI dependencies for the Tap4Service backend.

Provides the async database session dependency used by all route handlers
and the Bearer token extractor used by session validation.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tap4service.core.database import Database


# ---------------------------------------------------------------------------
# Database handle & per-request session
# ---------------------------------------------------------------------------
# The ``Database`` is built in the application lifespan and stored on
# ``app.state``. Each request gets its own ``AsyncSession`` from it.
# ---------------------------------------------------------------------------

def get_database(request: Request) -> Database:
    """Return the ``Database`` handle created at startup."""
    return request.app.state.db


async def get_db(
    database: Annotated[Database, Depends(get_database)],
) -> AsyncGenerator[AsyncSession, None]:
    """One ``AsyncSession`` per HTTP request.

    Routes that notify commit on their own first; anything still pending is
    committed here. An exception raised by the route rolls the session back
    before the error envelope is rendered.
    """
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ---------------------------------------------------------------------------
# Annotated type alias for convenience
# ---------------------------------------------------------------------------
DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Bearer token
# ---------------------------------------------------------------------------

_bearer_scheme_optional = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(_bearer_scheme_optional)
    ],
) -> Optional[str]:
    """Return the raw Bearer token, or None when the header is absent."""
    return credentials.credentials if credentials else None


BearerToken = Annotated[Optional[str], Depends(get_bearer_token)]
