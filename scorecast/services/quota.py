# scorecast/services/quota.py
from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Protocol

from scorecast.core.store import Store

logger = logging.getLogger("scorecast.quota")


class QuotaGate(Protocol):
    async def check_quota(self, user_id: str) -> bool: ...

    async def is_metered(self, user_id: str) -> bool: ...

    async def decrement_quota(self, user_id: str) -> None: ...


class StoreQuotaGate:
    """Durable quota backed by the profiles table and its SQL functions."""

    def __init__(self, store: Store):
        self.store = store

    async def check_quota(self, user_id: str) -> bool:
        allowed = await self.store.call("fn_can_consume_prediction", {"u_id": user_id})
        return bool(allowed)

    async def is_metered(self, user_id: str) -> bool:
        profile = await self.store.select_one("profiles", {"id": user_id})
        # no profile row yet = free plan
        return not (profile and profile.get("is_premium"))

    async def decrement_quota(self, user_id: str) -> None:
        await self.store.call("fn_increment_free_predictions", {"u_id": user_id})


class SoftRateCounter:
    """
    Per-user sliding-window counter kept in process memory.

    Secondary guard only: it is lost on restart and not shared between
    workers. The durable check is QuotaGate.check_quota.
    """

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    @property
    def tracked_users(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        for user_id in [u for u, hits in self._hits.items() if not hits or now - hits[-1] >= self.window]:
            del self._hits[user_id]
        self._last_sweep = now

    def allow(self, user_id: str) -> bool:
        if self.max_requests <= 0:
            return True
        now = self._clock()
        # drop users idle for a whole window, at most once per window
        if now - self._last_sweep >= self.window:
            self._sweep(now)
        hits = self._hits.setdefault(user_id, deque())
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def reset(self, user_id: Optional[str] = None) -> None:
        if user_id is None:
            self._hits.clear()
        else:
            self._hits.pop(user_id, None)
