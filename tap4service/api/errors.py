"""
Error envelope for the HTTP API.

Every failure leaves the API as ``{"error": str, "details"?: str,
"field"?: str}``. Service-layer exceptions carry their own status code;
request validation problems become 400 naming the first offending field;
anything unexpected becomes a generic 500.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tap4service.core.config import settings
from tap4service.services.errors import ServiceError, ValidationFailed

logger = logging.getLogger(__name__)


def error_body(
    message: str,
    *,
    field: Optional[str] = None,
    details: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    if field is not None:
        body["field"] = field
    body.update(extra)
    return body


def _describe_validation_error(error: dict[str, Any]) -> tuple[str, Optional[str]]:
    """Turn one pydantic error into (message, field)."""
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = loc[-1] if loc else None
    if error.get("type") == "missing":
        if field is None:
            return "Request body is required", None
        return f"{field} is required", field
    if field is None:
        return f"Invalid request body: {error.get('msg')}", None
    return f"Invalid {field}: {error.get('msg')}", field


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    extra: dict[str, Any] = {}
    if isinstance(exc, ValidationFailed) and exc.missing_fields:
        extra["missingFields"] = exc.missing_fields
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, field=exc.field, **extra),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Report request validation failures as 400 with the first bad field."""
    errors = exc.errors()
    logger.warning("Validation error for %s: %s", request.url.path, errors)
    if not errors:
        return JSONResponse(status_code=400, content=error_body("Invalid request"))
    message, field = _describe_validation_error(errors[0])
    return JSONResponse(status_code=400, content=error_body(message, field=field))


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body(
            "Server error",
            details=str(exc) if settings.debug else None,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-rendering handlers on ``app``."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
