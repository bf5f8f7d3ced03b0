"""Per-channel FIFO buffer for messages that could not be delivered yet."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from typing import Awaitable, Callable, Deque, List

from .models import OutgoingQueueItem

logger = logging.getLogger(__name__)

Deliver = Callable[[OutgoingQueueItem], Awaitable[bool]]

MAX_DELIVERY_ATTEMPTS = 3


class OutgoingQueue:
    """FIFO of :class:`OutgoingQueueItem` with a single owner of delivery.

    At most one delivery runs at a time: either a direct send granted by
    :meth:`submit` or a :meth:`flush`. While one runs the queue is ``busy``
    and every new item waits behind it. All state changes happen under one
    ``asyncio.Lock``.

    A failed item goes back to the head. After ``max_attempts`` failures it
    is dropped so one unreachable chat cannot hold up the rest of the channel.
    """

    def __init__(self, name: str = "channel", max_attempts: int = MAX_DELIVERY_ATTEMPTS) -> None:
        self._name = name
        self._max_attempts = max_attempts
        self._items: Deque[OutgoingQueueItem] = deque()
        self._lock = asyncio.Lock()
        self._busy = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def busy(self) -> bool:
        return self._busy

    def snapshot(self) -> List[OutgoingQueueItem]:
        return list(self._items)

    async def enqueue(self, item: OutgoingQueueItem) -> int:
        """Append *item* and return the new depth."""
        async with self._lock:
            self._items.append(item)
            return len(self._items)

    async def submit(self, item: OutgoingQueueItem, *, connected: bool) -> bool:
        """Queue *item* if it has to wait; return False when it may go out directly.

        An item waits when the channel is disconnected, when another delivery
        is running, or when older items are still queued. A False return
        makes the caller the delivery owner until :meth:`finish_direct`.
        """
        async with self._lock:
            if connected and not self._busy and not self._items:
                self._busy = True
                return False
            self._items.append(item)
            return True

    async def finish_direct(self, item: OutgoingQueueItem, delivered: bool) -> int:
        """End a direct send granted by :meth:`submit`; return the queue depth.

        A failed item is put at the head, ahead of anything that queued up
        behind it while it was in flight.
        """
        async with self._lock:
            self._busy = False
            if not delivered:
                self._requeue_failed(item)
            return len(self._items)

    def _requeue_failed(self, item: OutgoingQueueItem) -> bool:
        # caller holds self._lock
        attempts = item.attempts + 1
        if attempts >= self._max_attempts:
            logger.error(
                "%s dropping message to %s after %d failed delivery attempts",
                self._name, item.jid, attempts,
            )
            return False
        self._items.appendleft(replace(item, attempts=attempts))
        return True

    async def flush(self, deliver: Deliver, is_connected: Callable[[], bool]) -> int:
        """Drain the queue in order through *deliver*; return items delivered.

        Items go out one at a time, each awaited before the next. The flush
        stops, leaving the rest queued, when the channel reports disconnected
        or when a delivery fails and the item goes back to the head. An item
        dropped for too many failures does not stop the flush. Returns 0
        immediately when another delivery is running.
        """
        async with self._lock:
            if self._busy or not self._items:
                return 0
            self._busy = True
            logger.info("Flushing %s outgoing queue (%d item(s))", self._name, len(self._items))

        sent = 0
        try:
            while True:
                async with self._lock:
                    if not self._items:
                        break
                    if not is_connected():
                        logger.info(
                            "%s disconnected during flush, %d item(s) stay queued",
                            self._name, len(self._items),
                        )
                        break
                    item = self._items.popleft()

                try:
                    ok = await deliver(item)
                except asyncio.CancelledError:
                    self._items.appendleft(item)
                    raise
                except Exception:
                    logger.exception("%s flush delivery raised for %s", self._name, item.jid)
                    ok = False

                if ok:
                    sent += 1
                    continue
                async with self._lock:
                    requeued = self._requeue_failed(item)
                if requeued:
                    logger.warning(
                        "%s flush stopped on failed delivery, %d item(s) stay queued",
                        self._name, len(self._items),
                    )
                    break
        finally:
            self._busy = False

        if sent:
            logger.info("%s outgoing queue flushed %d item(s)", self._name, sent)
        return sent
