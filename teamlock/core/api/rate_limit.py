"""Per-address rate limiting for team code verification.

Fixed windows of ``window_seconds`` per originating network address. The
counters live in the shared store (``Store.incr_window``), not in process
memory, so every server instance sees the same budget.

The device hint is attacker-controlled and is deliberately not part of the
key. A limit of 0 turns the limiter off.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from teamlock.core import audit
from teamlock.core.lock.errors import RateLimitedError
from teamlock.core.storage.base import Store, run_store_op

logger = logging.getLogger("teamlock.api")

_KEY_PREFIX = "verify:"


class VerifyRateLimiter:
    """Fixed-window limiter over the shared store."""

    def __init__(
        self,
        store: Store,
        limit: int,
        window_seconds: int = 60,
        *,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.limit = int(limit)
        self.window_seconds = max(1, int(window_seconds))
        self._timeout = timeout
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    async def hit(self, address: str, request_id: Optional[str] = None) -> None:
        """Count one attempt from ``address``.

        Raises:
            RateLimitedError: with seconds until the window resets.
        """
        if not self.enabled:
            return

        now = self._clock()
        window_start = int(now // self.window_seconds) * self.window_seconds
        count = await run_store_op(
            self._store.incr_window(_KEY_PREFIX + address, window_start),
            operation="incr_window",
            timeout=self._timeout,
        )
        if count > self.limit:
            retry_after = max(1, int(window_start + self.window_seconds - now))
            logger.warning(
                "rate_limited request_id=%s count=%d limit=%d retry_after=%d",
                request_id or "?",
                count,
                self.limit,
                retry_after,
            )
            audit.log_security_event("verify_rate_limited", request_id=request_id, count=count)
            raise RateLimitedError(retry_after)
