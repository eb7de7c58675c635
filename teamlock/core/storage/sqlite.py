"""SqliteStore -- file-backed backend shared by any number of handler processes.

Each operation opens its own connection (autocommit mode) and runs in the
starlette threadpool so the event loop never blocks on disk I/O.
Check-then-act operations run inside ``BEGIN IMMEDIATE``: SQLite grants the
reserved lock to one writer at a time, so two processes racing on the same
device hint or team record are serialized by the database, not by app code.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from teamlock.core.storage.base import (
    CodeMapping,
    DeviceLock,
    LockOutcome,
    Store,
    TeamRecord,
    WriteOutcome,
)

logger = logging.getLogger("teamlock.api")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS device_locks (
    device_hint TEXT PRIMARY KEY,
    team_id     TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_device_locks_expires ON device_locks (expires_at);

CREATE TABLE IF NOT EXISTS team_records (
    team_id     TEXT PRIMARY KEY,
    document    TEXT NOT NULL,
    version_tag TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS team_codes (
    code              TEXT PRIMARY KEY,
    team_id           TEXT NOT NULL,
    team_display_name TEXT NOT NULL,
    active            INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS rate_windows (
    key          TEXT PRIMARY KEY,
    window_start INTEGER NOT NULL,
    count        INTEGER NOT NULL
);
"""


class SqliteStore(Store):
    name = "sqlite"

    def __init__(self, path: str, busy_timeout: float = 5.0) -> None:
        self._path = str(path)
        self._busy_timeout = busy_timeout
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        finally:
            conn.close()
        logger.info("sqlite_store_ready path=%s", self._path)

    @property
    def path(self) -> str:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(
            self._path,
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )

    # ── Device locks ──────────────────────────────────────────

    def _check_and_lock(
        self, device_hint: str, team_id: str, expires_at: float, now: float
    ) -> LockOutcome:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT team_id, expires_at FROM device_locks WHERE device_hint = ?",
                (device_hint,),
            ).fetchone()
            if row is not None and row[1] > now and row[0] != team_id:
                conn.execute("ROLLBACK")
                return LockOutcome(
                    ok=False,
                    lock=DeviceLock(device_hint=device_hint, team_id=row[0], expires_at=row[1]),
                )
            conn.execute(
                "INSERT INTO device_locks (device_hint, team_id, expires_at) VALUES (?, ?, ?) "
                "ON CONFLICT(device_hint) DO UPDATE SET "
                "team_id = excluded.team_id, expires_at = excluded.expires_at",
                (device_hint, team_id, expires_at),
            )
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        return LockOutcome(
            ok=True,
            lock=DeviceLock(device_hint=device_hint, team_id=team_id, expires_at=expires_at),
        )

    async def check_and_lock(
        self, device_hint: str, team_id: str, expires_at: float, now: float
    ) -> LockOutcome:
        return await run_in_threadpool(
            self._check_and_lock, device_hint, team_id, expires_at, now
        )

    def _get_lock(self, device_hint: str, now: float) -> Optional[DeviceLock]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT team_id, expires_at FROM device_locks "
                "WHERE device_hint = ? AND expires_at > ?",
                (device_hint, now),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return DeviceLock(device_hint=device_hint, team_id=row[0], expires_at=row[1])

    async def get_lock(self, device_hint: str, now: float) -> Optional[DeviceLock]:
        return await run_in_threadpool(self._get_lock, device_hint, now)

    def _purge_expired_locks(self, now: float) -> int:
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM device_locks WHERE expires_at <= ?", (now,))
            return cur.rowcount
        finally:
            conn.close()

    async def purge_expired_locks(self, now: float) -> int:
        return await run_in_threadpool(self._purge_expired_locks, now)

    # ── Team records ──────────────────────────────────────────

    def _read_record(self, team_id: str) -> TeamRecord:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT document, version_tag FROM team_records WHERE team_id = ?",
                (team_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return TeamRecord(team_id=team_id)
        return TeamRecord(team_id=team_id, document=json.loads(row[0]), version_tag=row[1])

    async def read_record(self, team_id: str) -> TeamRecord:
        return await run_in_threadpool(self._read_record, team_id)

    def _write_record(
        self,
        team_id: str,
        document: Dict[str, Any],
        expected_version_tag: Optional[str],
        new_version_tag: str,
    ) -> WriteOutcome:
        payload = json.dumps(document, separators=(",", ":"), sort_keys=True)
        conn = self._connect()
        try:
            if expected_version_tag is None:
                cur = conn.execute(
                    "INSERT INTO team_records (team_id, document, version_tag) VALUES (?, ?, ?) "
                    "ON CONFLICT(team_id) DO NOTHING",
                    (team_id, payload, new_version_tag),
                )
            else:
                cur = conn.execute(
                    "UPDATE team_records SET document = ?, version_tag = ? "
                    "WHERE team_id = ? AND version_tag = ?",
                    (payload, new_version_tag, team_id, expected_version_tag),
                )
            if cur.rowcount == 1:
                return WriteOutcome(ok=True, version_tag=new_version_tag)
            row = conn.execute(
                "SELECT version_tag FROM team_records WHERE team_id = ?", (team_id,)
            ).fetchone()
        finally:
            conn.close()
        return WriteOutcome(ok=False, version_tag=row[0] if row else None, conflict=True)

    async def write_record(
        self,
        team_id: str,
        document: Dict[str, Any],
        expected_version_tag: Optional[str],
        new_version_tag: str,
    ) -> WriteOutcome:
        return await run_in_threadpool(
            self._write_record, team_id, document, expected_version_tag, new_version_tag
        )

    # ── Code registry ─────────────────────────────────────────

    def _get_code(self, code: str) -> Optional[CodeMapping]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT code, team_id, team_display_name, active FROM team_codes WHERE code = ?",
                (code,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return CodeMapping(code=row[0], team_id=row[1], team_display_name=row[2], active=bool(row[3]))

    async def get_code(self, code: str) -> Optional[CodeMapping]:
        return await run_in_threadpool(self._get_code, code)

    def _put_code(self, mapping: CodeMapping) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO team_codes (code, team_id, team_display_name, active) "
                "VALUES (?, ?, ?, ?) ON CONFLICT(code) DO UPDATE SET "
                "team_id = excluded.team_id, team_display_name = excluded.team_display_name, "
                "active = excluded.active",
                (mapping.code, mapping.team_id, mapping.team_display_name, int(mapping.active)),
            )
        finally:
            conn.close()

    async def put_code(self, mapping: CodeMapping) -> None:
        await run_in_threadpool(self._put_code, mapping)

    def _list_codes(self) -> List[CodeMapping]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT code, team_id, team_display_name, active FROM team_codes ORDER BY code"
            ).fetchall()
        finally:
            conn.close()
        return [
            CodeMapping(code=r[0], team_id=r[1], team_display_name=r[2], active=bool(r[3]))
            for r in rows
        ]

    async def list_codes(self) -> List[CodeMapping]:
        return await run_in_threadpool(self._list_codes)

    # ── Rate windows ──────────────────────────────────────────

    def _incr_window(self, key: str, window_start: int) -> int:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                "INSERT INTO rate_windows (key, window_start, count) VALUES (?, ?, 1) "
                "ON CONFLICT(key) DO UPDATE SET "
                "count = CASE WHEN window_start = excluded.window_start THEN count + 1 ELSE 1 END, "
                "window_start = excluded.window_start",
                (key, window_start),
            )
            row = conn.execute(
                "SELECT count FROM rate_windows WHERE key = ?", (key,)
            ).fetchone()
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        return int(row[0])

    async def incr_window(self, key: str, window_start: int) -> int:
        return await run_in_threadpool(self._incr_window, key, window_start)

    def _ping(self) -> None:
        conn = self._connect()
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()

    async def ping(self) -> None:
        await run_in_threadpool(self._ping)
