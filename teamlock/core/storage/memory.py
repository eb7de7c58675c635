"""MemoryStore -- thread-safe in-process backend.

Same pattern as the other in-memory stores: plain dicts guarded by one
``threading.Lock``, ``reset()`` for test isolation. Every conditional write
happens entirely under the lock, which is what makes it atomic.

Only valid for a single server process; use the sqlite backend when several
handler processes share state.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional, Tuple

from teamlock.core.storage.base import (
    CodeMapping,
    DeviceLock,
    LockOutcome,
    Store,
    TeamRecord,
    WriteOutcome,
)


class MemoryStore(Store):
    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: Dict[str, DeviceLock] = {}
        self._records: Dict[str, TeamRecord] = {}
        self._codes: Dict[str, CodeMapping] = {}
        self._windows: Dict[str, Tuple[int, int]] = {}

    def reset(self) -> None:
        with self._lock:
            self._locks.clear()
            self._records.clear()
            self._codes.clear()
            self._windows.clear()

    # ── Device locks ──────────────────────────────────────────

    async def check_and_lock(
        self, device_hint: str, team_id: str, expires_at: float, now: float
    ) -> LockOutcome:
        with self._lock:
            existing = self._locks.get(device_hint)
            if existing is not None and existing.is_live(now) and existing.team_id != team_id:
                return LockOutcome(ok=False, lock=existing)
            lock = DeviceLock(device_hint=device_hint, team_id=team_id, expires_at=expires_at)
            self._locks[device_hint] = lock
            return LockOutcome(ok=True, lock=lock)

    async def get_lock(self, device_hint: str, now: float) -> Optional[DeviceLock]:
        with self._lock:
            existing = self._locks.get(device_hint)
        if existing is None or not existing.is_live(now):
            return None
        return existing

    async def purge_expired_locks(self, now: float) -> int:
        with self._lock:
            expired = [hint for hint, lock in self._locks.items() if not lock.is_live(now)]
            for hint in expired:
                del self._locks[hint]
        return len(expired)

    # ── Team records ──────────────────────────────────────────

    async def read_record(self, team_id: str) -> TeamRecord:
        with self._lock:
            record = self._records.get(team_id)
        if record is None:
            return TeamRecord(team_id=team_id)
        return TeamRecord(
            team_id=team_id,
            document=copy.deepcopy(record.document),
            version_tag=record.version_tag,
        )

    async def write_record(
        self,
        team_id: str,
        document: Dict[str, Any],
        expected_version_tag: Optional[str],
        new_version_tag: str,
    ) -> WriteOutcome:
        with self._lock:
            current = self._records.get(team_id)
            current_tag = current.version_tag if current is not None else None
            if current_tag != expected_version_tag:
                return WriteOutcome(ok=False, version_tag=current_tag, conflict=True)
            self._records[team_id] = TeamRecord(
                team_id=team_id,
                document=copy.deepcopy(document),
                version_tag=new_version_tag,
            )
        return WriteOutcome(ok=True, version_tag=new_version_tag)

    # ── Code registry ─────────────────────────────────────────

    async def get_code(self, code: str) -> Optional[CodeMapping]:
        with self._lock:
            return self._codes.get(code)

    async def put_code(self, mapping: CodeMapping) -> None:
        with self._lock:
            self._codes[mapping.code] = mapping

    async def list_codes(self) -> List[CodeMapping]:
        with self._lock:
            return sorted(self._codes.values(), key=lambda m: m.code)

    # ── Rate windows ──────────────────────────────────────────

    async def incr_window(self, key: str, window_start: int) -> int:
        with self._lock:
            start, count = self._windows.get(key, (window_start, 0))
            if start != window_start:
                count = 0
            count += 1
            self._windows[key] = (window_start, count)
            return count

    async def ping(self) -> None:
        return None
