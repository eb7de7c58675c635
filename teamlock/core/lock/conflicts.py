"""Conflict detector: one live team per device hint.

The read-then-write is a single store primitive (``Store.check_and_lock``);
this class only turns its outcome into the caller-facing result. There is no
release operation: locks end when their TTL does.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from teamlock.core.storage.base import DeviceLock, Store, run_store_op


@dataclass(frozen=True)
class LockResult:
    ok: bool
    team_id: str
    expires_at: float
    conflicting_team_id: Optional[str] = None
    remaining_ttl: int = 0


class ConflictDetector:
    def __init__(
        self,
        store: Store,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._clock = clock

    async def check_and_lock(
        self,
        device_hint: str,
        team_id: str,
        ttl_seconds: int,
        now: Optional[float] = None,
    ) -> LockResult:
        """Take or refresh the lock for ``device_hint``.

        Conflict results carry the *existing* lock's remaining TTL.
        """
        now = self._clock() if now is None else now
        outcome = await run_store_op(
            self._store.check_and_lock(device_hint, team_id, now + ttl_seconds, now),
            operation="check_and_lock",
            timeout=self._timeout,
        )
        if outcome.ok:
            return LockResult(
                ok=True,
                team_id=team_id,
                expires_at=outcome.lock.expires_at,
                remaining_ttl=outcome.lock.remaining_ttl(now),
            )
        return LockResult(
            ok=False,
            team_id=team_id,
            expires_at=outcome.lock.expires_at,
            conflicting_team_id=outcome.lock.team_id,
            remaining_ttl=outcome.lock.remaining_ttl(now),
        )

    async def current(self, device_hint: str) -> Optional[DeviceLock]:
        return await run_store_op(
            self._store.get_lock(device_hint, self._clock()),
            operation="get_lock",
            timeout=self._timeout,
        )

    async def purge_expired(self) -> int:
        return await run_store_op(
            self._store.purge_expired_locks(self._clock()),
            operation="purge_expired_locks",
            timeout=self._timeout,
        )
