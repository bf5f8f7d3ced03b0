"""Tests for the outgoing queue and its flush policy."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from src.chatbridge.core.channel.models import OutgoingQueueItem
from src.chatbridge.core.channel.outgoing import OutgoingQueue


def _item(text: str) -> OutgoingQueueItem:
    return OutgoingQueueItem(jid="lark:oc_1", text=text)


class Recorder:
    """Deliver callable that records items and can be scripted to fail."""

    def __init__(self, fail_on: tuple = (), raise_on: tuple = ()) -> None:
        self.sent: List[str] = []
        self._fail_on = set(fail_on)
        self._raise_on = set(raise_on)

    async def __call__(self, item: OutgoingQueueItem) -> bool:
        if item.text in self._raise_on:
            raise RuntimeError("boom")
        if item.text in self._fail_on:
            return False
        self.sent.append(item.text)
        return True


# ===========================================================================
# submit / enqueue
# ===========================================================================

class TestSubmit:
    @pytest.mark.asyncio
    async def test_direct_when_connected_and_empty(self):
        q = OutgoingQueue()
        assert await q.submit(_item("a"), connected=True) is False
        assert len(q) == 0

    @pytest.mark.asyncio
    async def test_queues_when_disconnected(self):
        q = OutgoingQueue()
        assert await q.submit(_item("a"), connected=False) is True
        assert [i.text for i in q.snapshot()] == ["a"]

    @pytest.mark.asyncio
    async def test_queues_behind_pending_items(self):
        q = OutgoingQueue()
        await q.enqueue(_item("old"))
        assert await q.submit(_item("new"), connected=True) is True
        assert [i.text for i in q.snapshot()] == ["old", "new"]

    @pytest.mark.asyncio
    async def test_enqueue_returns_depth(self):
        q = OutgoingQueue()
        assert await q.enqueue(_item("a")) == 1
        assert await q.enqueue(_item("b")) == 2

    @pytest.mark.asyncio
    async def test_direct_send_makes_later_items_wait(self):
        q = OutgoingQueue()
        assert await q.submit(_item("a"), connected=True) is False
        assert q.busy
        assert await q.submit(_item("b"), connected=True) is True
        assert await q.flush(Recorder(), lambda: True) == 0
        assert await q.finish_direct(_item("a"), delivered=True) == 1
        assert not q.busy
        assert [i.text for i in q.snapshot()] == ["b"]

    @pytest.mark.asyncio
    async def test_failed_direct_send_goes_ahead_of_later_items(self):
        q = OutgoingQueue()
        first = _item("a")
        assert await q.submit(first, connected=True) is False
        await q.submit(_item("b"), connected=True)
        assert await q.finish_direct(first, delivered=False) == 2
        assert [i.text for i in q.snapshot()] == ["a", "b"]
        assert q.snapshot()[0].attempts == 1


# ===========================================================================
# attempt limit
# ===========================================================================

class TestAttemptLimit:
    @pytest.mark.asyncio
    async def test_undeliverable_item_dropped_and_flush_continues(self):
        q = OutgoingQueue(max_attempts=2)
        await q.enqueue(OutgoingQueueItem(jid="lark:gone", text="bad"))
        await q.enqueue(_item("ok1"))
        await q.enqueue(_item("ok2"))
        rec = Recorder(fail_on=("bad",))

        assert await q.flush(rec, lambda: True) == 0
        assert [i.text for i in q.snapshot()] == ["bad", "ok1", "ok2"]

        assert await q.flush(rec, lambda: True) == 2
        assert rec.sent == ["ok1", "ok2"]
        assert len(q) == 0

    @pytest.mark.asyncio
    async def test_direct_failures_count_towards_limit(self):
        q = OutgoingQueue(max_attempts=2)
        item = _item("bad")
        await q.submit(item, connected=True)
        await q.finish_direct(item, delivered=False)
        await q.enqueue(_item("next"))
        rec = Recorder(fail_on=("bad",))
        assert await q.flush(rec, lambda: True) == 1
        assert rec.sent == ["next"]

    def test_attempts_ignored_in_equality(self):
        assert OutgoingQueueItem("j", "t", attempts=2) == OutgoingQueueItem("j", "t")


# ===========================================================================
# flush
# ===========================================================================

class TestFlush:
    @pytest.mark.asyncio
    async def test_fifo_order(self):
        q = OutgoingQueue()
        for text in ("1", "2", "3"):
            await q.enqueue(_item(text))
        rec = Recorder()
        assert await q.flush(rec, lambda: True) == 3
        assert rec.sent == ["1", "2", "3"]
        assert len(q) == 0
        assert not q.busy

    @pytest.mark.asyncio
    async def test_empty_queue(self):
        q = OutgoingQueue()
        assert await q.flush(Recorder(), lambda: True) == 0

    @pytest.mark.asyncio
    async def test_failed_item_returns_to_head_and_flush_stops(self):
        q = OutgoingQueue()
        for text in ("1", "2", "3"):
            await q.enqueue(_item(text))
        rec = Recorder(fail_on=("2",))
        assert await q.flush(rec, lambda: True) == 1
        assert rec.sent == ["1"]
        assert [i.text for i in q.snapshot()] == ["2", "3"]
        assert not q.busy

    @pytest.mark.asyncio
    async def test_raising_delivery_treated_as_failure(self):
        q = OutgoingQueue()
        await q.enqueue(_item("x"))
        await q.enqueue(_item("y"))
        assert await q.flush(Recorder(raise_on=("x",)), lambda: True) == 0
        assert [i.text for i in q.snapshot()] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_disconnect_mid_flush_keeps_rest_in_order(self):
        q = OutgoingQueue()
        for text in ("1", "2", "3", "4"):
            await q.enqueue(_item(text))
        state = {"connected": True}
        sent: List[str] = []

        async def deliver(item):
            sent.append(item.text)
            if item.text == "2":
                # connection drops while "2" is in flight
                state["connected"] = False
            return True

        assert await q.flush(deliver, lambda: state["connected"]) == 2
        assert sent == ["1", "2"]
        assert [i.text for i in q.snapshot()] == ["3", "4"]
        assert not q.busy

    @pytest.mark.asyncio
    async def test_not_connected_sends_nothing(self):
        q = OutgoingQueue()
        await q.enqueue(_item("a"))
        rec = Recorder()
        assert await q.flush(rec, lambda: False) == 0
        assert rec.sent == []
        assert len(q) == 1

    @pytest.mark.asyncio
    async def test_single_flight(self):
        q = OutgoingQueue()
        await q.enqueue(_item("a"))
        await q.enqueue(_item("b"))
        gate = asyncio.Event()
        sent: List[str] = []

        async def slow_deliver(item):
            await gate.wait()
            sent.append(item.text)
            return True

        first = asyncio.create_task(q.flush(slow_deliver, lambda: True))
        await asyncio.sleep(0)
        assert q.busy
        assert await q.flush(slow_deliver, lambda: True) == 0
        gate.set()
        assert await first == 2
        assert sent == ["a", "b"]

    @pytest.mark.asyncio
    async def test_items_submitted_during_flush_go_out_last(self):
        q = OutgoingQueue()
        await q.enqueue(_item("a"))
        sent: List[str] = []

        async def deliver(item):
            if item.text == "a":
                assert await q.submit(_item("late"), connected=True) is True
            sent.append(item.text)
            return True

        assert await q.flush(deliver, lambda: True) == 2
        assert sent == ["a", "late"]

    @pytest.mark.asyncio
    async def test_cancelled_flush_requeues_in_flight_item(self):
        q = OutgoingQueue()
        await q.enqueue(_item("a"))
        await q.enqueue(_item("b"))
        started = asyncio.Event()

        async def hang(item):
            started.set()
            await asyncio.sleep(3600)
            return True

        task = asyncio.create_task(q.flush(hang, lambda: True))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert [i.text for i in q.snapshot()] == ["a", "b"]
        assert not q.busy
