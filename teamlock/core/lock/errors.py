"""Team lock error taxonomy.

Every failure the lock subsystem can report is a ``TeamLockError`` with a
stable machine-readable ``code``, a human-readable ``message``, the HTTP
``status`` it maps to, and optional ``context`` fields that are merged into
the error envelope (e.g. ``remainingTtlSeconds``).

Stable codes:
    TEAM_CODE_INVALID, TEAM_LOCK_CONFLICT, RATE_LIMITED, INVALID_TOKEN,
    TEAM_LOCK_EXPIRED, TEAM_MISMATCH, VERSION_CONFLICT, STORAGE_ERROR
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional


class TeamLockError(Exception):
    """Base class for client-actionable team lock failures."""

    code = "INTERNAL_ERROR"
    status = 500
    default_message = "Internal server error."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.code, "message": self.message, **self.context}


class TeamCodeInvalidError(TeamLockError):
    """Unknown or inactive code. Never says which."""

    code = "TEAM_CODE_INVALID"
    status = 401
    default_message = "That code didn't work. Check with your host."


class TeamLockConflictError(TeamLockError):
    code = "TEAM_LOCK_CONFLICT"
    status = 409

    def __init__(self, remaining_ttl_seconds: int, conflicting_team_id: str = "") -> None:
        self.remaining_ttl_seconds = int(remaining_ttl_seconds)
        # Kept server-side for logging only; never rendered to the client.
        self.conflicting_team_id = conflicting_team_id
        hours_left = max(1, math.ceil(self.remaining_ttl_seconds / 3600))
        super().__init__(
            f"You're already checked in with another team for the next {hours_left}h.",
            context={"remainingTtlSeconds": self.remaining_ttl_seconds},
        )


class RateLimitedError(TeamLockError):
    code = "RATE_LIMITED"
    status = 429

    def __init__(self, retry_after_seconds: int = 60) -> None:
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            "Too many attempts. Please try again later.",
            context={"retryAfterSeconds": self.retry_after_seconds},
        )


class InvalidTokenError(TeamLockError):
    code = "INVALID_TOKEN"
    status = 401
    default_message = "Invalid or malformed team lock token."


class TeamLockExpiredError(TeamLockError):
    code = "TEAM_LOCK_EXPIRED"
    status = 419
    default_message = "Your team session has expired. Please re-enter your team code."


class TeamMismatchError(TeamLockError):
    code = "TEAM_MISMATCH"
    status = 403
    default_message = "You don't have permission to access this team's data."


class VersionConflictError(TeamLockError):
    """The team record changed since the caller read it."""

    code = "VERSION_CONFLICT"
    status = 409

    def __init__(self, current_version_tag: Optional[str]) -> None:
        self.current_version_tag = current_version_tag
        super().__init__(
            "Team data changed on another device. Reload and try again.",
            context={"currentVersionTag": current_version_tag},
        )


class StorageError(TeamLockError):
    """Backing store unavailable or timed out. Retryable."""

    code = "STORAGE_ERROR"
    status = 503
    default_message = "Storage operation failed. Please try again."
