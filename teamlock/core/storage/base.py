"""Backing-store contract for team locks, team records, codes and rate windows.

All cross-request coordination goes through a ``Store``. Implementations must
make ``check_and_lock``, ``write_record`` and ``incr_window`` atomic at the
storage layer: two concurrent callers can never both observe "absent" and both
write.

Every store method is a coroutine. Callers go through ``run_store_op`` so a
slow or failing backend becomes a ``StorageError`` instead of hanging the
request or leaking a backend-specific exception.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from teamlock.core.lock.errors import StorageError, TeamLockError

logger = logging.getLogger("teamlock.api")

T = TypeVar("T")


@dataclass(frozen=True)
class CodeMapping:
    """One human-entered code and the team it unlocks."""

    code: str
    team_id: str
    team_display_name: str
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "team_id": self.team_id,
            "team_display_name": self.team_display_name,
            "active": self.active,
        }


@dataclass(frozen=True)
class DeviceLock:
    """A device currently holds a capability for ``team_id`` until ``expires_at``."""

    device_hint: str
    team_id: str
    expires_at: float

    def is_live(self, now: float) -> bool:
        return self.expires_at > now

    def remaining_ttl(self, now: float) -> int:
        return max(0, int(self.expires_at - now))


@dataclass(frozen=True)
class LockOutcome:
    """Result of a conditional lock write.

    ``ok`` is False only when a live lock for a different team exists; ``lock``
    is then the existing record, otherwise the record that was written.
    """

    ok: bool
    lock: DeviceLock


@dataclass(frozen=True)
class TeamRecord:
    team_id: str
    document: Dict[str, Any] = field(default_factory=dict)
    version_tag: Optional[str] = None


@dataclass(frozen=True)
class WriteOutcome:
    ok: bool
    version_tag: Optional[str]
    conflict: bool = False


class Store(abc.ABC):
    """Shared backing store."""

    name = "abstract"

    # ── Device locks ──────────────────────────────────────────

    @abc.abstractmethod
    async def check_and_lock(
        self, device_hint: str, team_id: str, expires_at: float, now: float
    ) -> LockOutcome:
        """Atomically write a lock unless a live lock for another team exists.

        Absent or expired record: write. Live record for the same team:
        refresh ``expires_at``. Live record for a different team: leave it
        untouched and return ``ok=False`` with the existing record.
        """

    @abc.abstractmethod
    async def get_lock(self, device_hint: str, now: float) -> Optional[DeviceLock]:
        """Return the live lock for ``device_hint`` or None."""

    @abc.abstractmethod
    async def purge_expired_locks(self, now: float) -> int:
        """Delete expired locks; return how many were removed."""

    # ── Team records ──────────────────────────────────────────

    @abc.abstractmethod
    async def read_record(self, team_id: str) -> TeamRecord:
        """Return the record; a never-written team reads as ``({}, None)``."""

    @abc.abstractmethod
    async def write_record(
        self,
        team_id: str,
        document: Dict[str, Any],
        expected_version_tag: Optional[str],
        new_version_tag: str,
    ) -> WriteOutcome:
        """Compare-and-swap on the version tag.

        ``expected_version_tag=None`` means "create; the record must not exist".
        On mismatch nothing is written and ``conflict=True`` is returned with
        the store's current tag.
        """

    # ── Code registry ─────────────────────────────────────────

    @abc.abstractmethod
    async def get_code(self, code: str) -> Optional[CodeMapping]:
        ...

    @abc.abstractmethod
    async def put_code(self, mapping: CodeMapping) -> None:
        ...

    @abc.abstractmethod
    async def list_codes(self) -> List[CodeMapping]:
        ...

    # ── Rate windows ──────────────────────────────────────────

    @abc.abstractmethod
    async def incr_window(self, key: str, window_start: int) -> int:
        """Atomically bump the fixed-window counter for ``key``.

        A counter from an older window is reset. Returns the new count.
        """

    # ── Lifecycle ─────────────────────────────────────────────

    @abc.abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    def close(self) -> None:
        """Release backend resources (no-op by default)."""


async def run_store_op(
    awaitable: Awaitable[T], *, operation: str, timeout: Optional[float] = None
) -> T:
    """Await a store call with a deadline, normalizing failures to StorageError.

    A timed-out call is reported as failed. The caller must not assume the
    write happened.
    """
    try:
        if timeout and timeout > 0:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        return await awaitable
    except TeamLockError:
        raise
    except asyncio.TimeoutError as exc:
        logger.error("storage_timeout operation=%s timeout_s=%s", operation, timeout)
        raise StorageError(context={"operation": operation}) from exc
    except Exception as exc:
        logger.error(
            "storage_failure operation=%s error=%s", operation, type(exc).__name__
        )
        raise StorageError(context={"operation": operation}) from exc
