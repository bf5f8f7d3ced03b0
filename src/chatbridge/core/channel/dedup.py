"""Per-channel inbound message-id dedup with a TTL window."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEDUP_TTL_SECONDS = 10 * 60
DEDUP_SWEEP_INTERVAL_SECONDS = 5 * 60


class DedupStore:
    """message_id -> first-seen time, swept periodically.

    All mutation happens on the event loop thread, so ``seen`` is atomic with
    respect to the sweep task. The sweep only ever deletes entries that are
    past the TTL at the moment of deletion.
    """

    def __init__(
        self,
        ttl: float = DEDUP_TTL_SECONDS,
        sweep_interval: float = DEDUP_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._seen: Dict[str, float] = {}
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def seen(self, message_id: str) -> bool:
        """Record *message_id*; return True if it was already seen within the TTL."""
        now = self._clock()
        first_seen = self._seen.get(message_id)
        if first_seen is not None and now - first_seen <= self._ttl:
            return True
        self._seen[message_id] = now
        return False

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired entries and return how many were removed."""
        if now is None:
            now = self._clock()
        expired = [key for key, ts in self._seen.items() if now - ts > self._ttl]
        removed = 0
        for key in expired:
            ts = self._seen.get(key)
            # re-stamped since the scan
            if ts is None or now - ts <= self._ttl:
                continue
            del self._seen[key]
            removed += 1
        return removed

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                removed = self.sweep()
            except Exception:
                logger.exception("Dedup sweep failed")
                continue
            if removed:
                logger.debug("Dedup sweep removed %d entr(ies), %d left", removed, len(self._seen))
