"""Verification service: the single entry point for acquiring a capability.

code -> registry lookup -> atomic device lock -> token.

The device lock is taken before the token is minted, and both share one
``expires_at``, so a token never exists without the lock that backs it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from teamlock.core import audit
from teamlock.core.lock.conflicts import ConflictDetector
from teamlock.core.lock.errors import (
    StorageError,
    TeamCodeInvalidError,
    TeamLockConflictError,
)
from teamlock.core.lock.registry import CodeRegistry
from teamlock.core.lock.tokens import TokenCodec


@dataclass(frozen=True)
class VerificationResult:
    team_id: str
    team_display_name: str
    token: str
    ttl_seconds: int
    expires_at: int

    def to_response(self) -> Dict[str, Any]:
        return {
            "teamId": self.team_id,
            "teamName": self.team_display_name,
            "lockToken": self.token,
            "ttlSeconds": self.ttl_seconds,
        }


class VerificationService:
    def __init__(
        self,
        registry: CodeRegistry,
        detector: ConflictDetector,
        codec: TokenCodec,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._detector = detector
        self._codec = codec
        self._clock = clock

    async def verify(
        self, code: str, device_hint: str, request_id: Optional[str] = None
    ) -> VerificationResult:
        """Exchange a team code for a capability token.

        Raises:
            TeamCodeInvalidError: unknown or inactive code.
            TeamLockConflictError: device holds a live lock for another team.
            StorageError: the store failed or timed out; nothing was issued.
        """
        try:
            mapping = await self._registry.resolve(code)
        except StorageError:
            audit.log_verification_attempt(code, "error", request_id=request_id)
            raise

        if mapping is None:
            audit.log_verification_attempt(
                code, "invalid_code", device_hint=device_hint, request_id=request_id
            )
            raise TeamCodeInvalidError()

        now = int(self._clock())
        try:
            lock = await self._detector.check_and_lock(
                device_hint, mapping.team_id, self._codec.ttl_seconds, now=now
            )
        except StorageError:
            audit.log_verification_attempt(
                code, "error", team_id=mapping.team_id, request_id=request_id
            )
            raise

        if not lock.ok:
            audit.log_verification_attempt(
                code,
                "conflict",
                team_id=lock.conflicting_team_id,
                device_hint=device_hint,
                request_id=request_id,
            )
            raise TeamLockConflictError(lock.remaining_ttl, lock.conflicting_team_id or "")

        token, expires_at = self._codec.mint(mapping.team_id, now=now)

        audit.log_verification_attempt(
            code,
            "success",
            team_id=mapping.team_id,
            device_hint=device_hint,
            request_id=request_id,
        )
        audit.log_lock_operation(
            "issued", mapping.team_id, device_hint=device_hint, expires_at=expires_at
        )
        return VerificationResult(
            team_id=mapping.team_id,
            team_display_name=mapping.team_display_name,
            token=token,
            ttl_seconds=expires_at - now,
            expires_at=expires_at,
        )
