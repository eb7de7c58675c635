"""Build the configured store backend."""

from __future__ import annotations

from teamlock.core.storage.base import Store
from teamlock.core.storage.memory import MemoryStore
from teamlock.core.storage.sqlite import SqliteStore

STORE_KINDS = ("memory", "sqlite")


def create_store(kind: str, path: str = "", timeout: float = 5.0) -> Store:
    kind = (kind or "memory").lower()
    if kind == "memory":
        return MemoryStore()
    if kind == "sqlite":
        if not path:
            raise ValueError("sqlite store requires TEAMLOCK_STORE_PATH")
        return SqliteStore(path, busy_timeout=timeout)
    raise ValueError(f"Unknown store kind: {kind!r}. Must be one of {list(STORE_KINDS)}")
