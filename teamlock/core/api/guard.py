"""Write authorization guard.

One reusable FastAPI dependency protects every team-scoped endpoint. The team
a request may act for is always re-derived from the verified ``X-Team-Lock``
token; the ``team_id`` in the path is only cross-checked against it.

Rejections, in order:
    no token / bad signature / malformed   -> INVALID_TOKEN (401)
    well-formed but past ``exp``            -> TEAM_LOCK_EXPIRED (419)
    token team != path team                 -> TEAM_MISMATCH (403)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from teamlock.core import audit
from teamlock.core.lock.errors import (
    InvalidTokenError,
    TeamLockExpiredError,
    TeamMismatchError,
)
from teamlock.core.lock.tokens import TokenClaims, TokenCodec

TEAM_LOCK_HEADER = "X-Team-Lock"


@dataclass(frozen=True)
class TeamContext:
    """What a guarded handler is allowed to act on."""

    team_id: str
    expires_at: int


class TeamLockGuard:
    def __init__(self, codec: TokenCodec, clock: Callable[[], float] = time.time) -> None:
        self._codec = codec
        self._clock = clock

    def authenticate(
        self,
        token: Optional[str],
        *,
        endpoint: str = "?",
        request_id: Optional[str] = None,
    ) -> TokenClaims:
        """Verified, unexpired claims for ``token``."""
        claims = self._codec.inspect(token.strip() if token else token)
        if claims is None:
            audit.log_write_rejection(endpoint, "invalid_token", request_id=request_id)
            raise InvalidTokenError()
        if claims.is_expired(self._clock()):
            audit.log_write_rejection(endpoint, "expired", claims.team_id, request_id=request_id)
            raise TeamLockExpiredError()
        return claims

    def authorize(
        self,
        token: Optional[str],
        target_team_id: str,
        *,
        endpoint: str = "?",
        request_id: Optional[str] = None,
    ) -> TokenClaims:
        """Claims for ``token`` if it may act on ``target_team_id``."""
        claims = self.authenticate(token, endpoint=endpoint, request_id=request_id)
        if claims.team_id != target_team_id:
            audit.log_write_rejection(endpoint, "team_mismatch", claims.team_id, request_id=request_id)
            audit.log_security_event(
                "team_mismatch",
                bound_team_id=claims.team_id,
                target_team_id=target_team_id,
                endpoint=endpoint,
                request_id=request_id,
            )
            raise TeamMismatchError()
        return claims


def _guard(request: Request) -> TeamLockGuard:
    return request.app.state.guard


async def require_team_lock(request: Request, team_id: str) -> TeamContext:
    """Dependency for routes under ``/api/teams/{team_id}``."""
    claims = _guard(request).authorize(
        request.headers.get(TEAM_LOCK_HEADER),
        team_id,
        endpoint=f"{request.method} {request.url.path}",
        request_id=getattr(request.state, "request_id", None),
    )
    request.state.team_id = claims.team_id
    return TeamContext(team_id=claims.team_id, expires_at=claims.expires_at)


async def require_token(request: Request) -> TeamContext:
    """Dependency for token-only routes with no target team in the path."""
    claims = _guard(request).authenticate(
        request.headers.get(TEAM_LOCK_HEADER),
        endpoint=f"{request.method} {request.url.path}",
        request_id=getattr(request.state, "request_id", None),
    )
    request.state.team_id = claims.team_id
    return TeamContext(team_id=claims.team_id, expires_at=claims.expires_at)
