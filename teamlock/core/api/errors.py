"""Normalized error envelope for the teamlock API.

Every API error follows:
    {"error": {"type": "<CODE>", "message": "<human readable>",
               "request_id": "<id>", ...context}}

Team lock codes (see ``teamlock.core.lock.errors``) plus the generic
VALIDATION_ERROR, NOT_FOUND, INTERNAL_ERROR.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from teamlock.core.lock.errors import RateLimitedError, StorageError, TeamLockError
from teamlock.core.secrets import redact_text

logger = logging.getLogger("teamlock.api")

_STATUS_TO_TYPE: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "INVALID_TOKEN",
    403: "TEAM_MISMATCH",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    503: "STORAGE_ERROR",
}


def make_error_envelope(
    error_type: str,
    message: str,
    request_id: Optional[str] = None,
    **context: Any,
) -> Dict[str, Any]:
    """Build the standard error envelope dict."""
    return {
        "error": {
            "type": error_type,
            "message": message,
            "request_id": request_id,
            **context,
        }
    }


def team_lock_error_response(exc: TeamLockError, request_id: Optional[str]) -> JSONResponse:
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=exc.status,
        content=make_error_envelope(exc.code, exc.message, request_id, **exc.context),
        headers=headers or None,
    )


async def team_lock_exception_handler(request: Request, exc: TeamLockError) -> JSONResponse:
    """Render a TeamLockError. Storage failures are logged, never fatal."""
    request_id = getattr(request.state, "request_id", None)
    if isinstance(exc, StorageError):
        logger.error(
            "storage_error request_id=%s path=%s operation=%s",
            request_id or "?",
            request.url.path,
            exc.context.get("operation", "?"),
        )
    return team_lock_error_response(exc, request_id)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException to the normalized error envelope."""
    request_id = getattr(request.state, "request_id", None)
    error_type = _STATUS_TO_TYPE.get(exc.status_code, "INTERNAL_ERROR")

    if isinstance(exc.detail, dict):
        raw = exc.detail.get("error") or exc.detail.get("message") or exc.detail
        message = raw if isinstance(raw, str) else str(raw)
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=make_error_envelope(error_type, redact_text(message), request_id),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to the normalized envelope."""
    request_id = getattr(request.state, "request_id", None)
    errors = exc.errors()
    if errors:
        parts = []
        for err in errors:
            loc = " -> ".join(str(l) for l in err.get("loc", []))
            msg = err.get("msg", "")
            parts.append(f"{loc}: {msg}" if loc else msg)
        message = "; ".join(parts)
    else:
        message = str(exc)

    return JSONResponse(
        status_code=422,
        content=make_error_envelope("VALIDATION_ERROR", redact_text(message), request_id),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions, returns 500 with envelope."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "unhandled_error request_id=%s path=%s error=%s",
        request_id or "?",
        request.url.path,
        type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content=make_error_envelope("INTERNAL_ERROR", "Internal server error.", request_id),
    )
