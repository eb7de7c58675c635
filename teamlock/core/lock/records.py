"""Team record store: per-team JSON document under optimistic concurrency.

Writes carry the version tag the caller read. A stale tag is rejected outright
(``conflict=True``); nothing is merged. ``update`` wraps the
read-modify-write loop for server-side mutations.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from teamlock.core import audit
from teamlock.core.lock.errors import VersionConflictError
from teamlock.core.storage.base import Store, TeamRecord, WriteOutcome, run_store_op

logger = logging.getLogger("teamlock.api")

DEFAULT_UPDATE_ATTEMPTS = 5

# Backoff between read-modify-write retries, in seconds.
_RETRY_DELAYS = (0.0, 0.01, 0.02, 0.04, 0.08)


def new_version_tag() -> str:
    return uuid.uuid4().hex


class TeamRecordStore:
    def __init__(
        self,
        store: Store,
        *,
        timeout: Optional[float] = None,
        max_attempts: int = DEFAULT_UPDATE_ATTEMPTS,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self.max_attempts = max(1, int(max_attempts))

    async def read(self, team_id: str) -> TeamRecord:
        return await run_store_op(
            self._store.read_record(team_id), operation="read_record", timeout=self._timeout
        )

    async def write(
        self,
        team_id: str,
        document: Dict[str, Any],
        expected_version_tag: Optional[str],
    ) -> WriteOutcome:
        if not isinstance(document, dict):
            raise TypeError("Team record document must be a JSON object")
        outcome = await run_store_op(
            self._store.write_record(team_id, document, expected_version_tag, new_version_tag()),
            operation="write_record",
            timeout=self._timeout,
        )
        audit.log_storage_operation(
            "write_record", team_id, outcome.ok, conflict=outcome.conflict or None
        )
        return outcome

    async def update(
        self,
        team_id: str,
        mutate: Callable[[Dict[str, Any]], Dict[str, Any]],
        attempts: Optional[int] = None,
    ) -> TeamRecord:
        """Read, apply ``mutate``, write back; retry on version conflicts.

        ``mutate`` receives a private copy of the current document and returns
        the new one. It may run more than once, so it must be free of side
        effects.

        Raises:
            VersionConflictError: still conflicting after ``attempts`` tries.
        """
        attempts = self.max_attempts if attempts is None else max(1, int(attempts))
        last_tag: Optional[str] = None
        for attempt in range(attempts):
            delay = _RETRY_DELAYS[min(attempt, len(_RETRY_DELAYS) - 1)]
            if delay:
                await asyncio.sleep(delay)
            current = await self.read(team_id)
            document = mutate(dict(current.document))
            outcome = await self.write(team_id, document, current.version_tag)
            if outcome.ok:
                if attempt > 0:
                    logger.info(
                        "record_update_retried team_id=%s attempts=%d", team_id, attempt + 1
                    )
                return TeamRecord(team_id=team_id, document=document, version_tag=outcome.version_tag)
            last_tag = outcome.version_tag
        logger.warning("record_update_exhausted team_id=%s attempts=%d", team_id, attempts)
        raise VersionConflictError(last_tag)
