"""Request-ID middleware and structured request logging for the teamlock API.

Adds X-Request-ID to every response (reads from header or generates one).
Logs one compact line per request: request_id, method, path, status,
elapsed_ms. Never logs request bodies, team codes, or lock tokens.

Supports TEAMLOCK_LOG_FORMAT=json for machine-readable JSON log lines.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from teamlock.core.secrets import safe_log_json

logger = logging.getLogger("teamlock.api")


def _utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach request ID and log request metadata."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        t0 = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        response.headers["x-request-id"] = request_id

        team_id = getattr(request.state, "team_id", None)
        log_format = os.environ.get("TEAMLOCK_LOG_FORMAT", "text")
        if log_format == "json":
            log_event = safe_log_json({
                "ts": _utc_now_iso(),
                "level": "INFO",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "elapsed_ms": elapsed_ms,
                "team_id": team_id,
            })
            logger.info(json.dumps(log_event, separators=(",", ":")))
        else:
            logger.info(
                "request_id=%s method=%s path=%s status=%d elapsed_ms=%d team_id=%s",
                request_id,
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                team_id or "-",
            )

        return response
