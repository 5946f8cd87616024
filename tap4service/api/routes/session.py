"""
Session validation route.

  GET /api/session/validate  -- check the Bearer token from login
"""

from __future__ import annotations

from fastapi import APIRouter

from tap4service.api.deps import BearerToken, DBSession
from tap4service.api.schemas.account import SessionResponse
from tap4service.services import account_service

router = APIRouter(prefix="/session", tags=["Session"])


@router.get(
    "/validate",
    response_model=SessionResponse,
    summary="Validate a session token",
)
async def validate(db: DBSession, token: BearerToken) -> dict:
    return await account_service.validate_session(db, token)
