"""Unit tests for the work queue and its rate limiter."""

import asyncio

import pytest
from unittest.mock import Mock

from stasher.controller.queue import ItemExponentialRateLimiter, WorkQueue


class TestItemExponentialRateLimiter:
    def test_doubles_until_cap(self):
        limiter = ItemExponentialRateLimiter(base_delay=1, max_delay=5)
        assert [limiter.when("k") for _ in range(5)] == [1, 2, 4, 5, 5]
        assert limiter.num_requeues("k") == 5

    def test_per_key(self):
        limiter = ItemExponentialRateLimiter(base_delay=1, max_delay=100)
        limiter.when("a")
        limiter.when("a")
        assert limiter.when("b") == 1

    def test_forget(self):
        limiter = ItemExponentialRateLimiter(base_delay=1, max_delay=100)
        limiter.when("a")
        limiter.forget("a")
        assert limiter.num_requeues("a") == 0
        assert limiter.when("a") == 1


class TestWorkQueue:
    @pytest.mark.asyncio
    async def test_dedup(self):
        queue = WorkQueue("test")
        queue.add("a")
        queue.add("a")
        queue.add("b")
        assert len(queue) == 2
        assert await queue.get() == "a"
        assert await queue.get() == "b"

    @pytest.mark.asyncio
    async def test_add_while_processing_is_deferred(self):
        queue = WorkQueue("test")
        queue.add("a")
        key = await queue.get()
        queue.add("a")
        # never handed out twice concurrently
        assert len(queue) == 0
        queue.done(key)
        assert len(queue) == 1
        assert await queue.get() == "a"

    @pytest.mark.asyncio
    async def test_done_without_readd(self):
        queue = WorkQueue("test")
        queue.add("a")
        queue.done(await queue.get())
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_get_waits_for_add(self):
        queue = WorkQueue("test")
        getter = asyncio.create_task(queue.get())
        await asyncio.sleep(0)
        assert not getter.done()
        queue.add("a")
        assert await asyncio.wait_for(getter, 1) == "a"

    @pytest.mark.asyncio
    async def test_shut_down_releases_waiters(self):
        queue = WorkQueue("test")
        getter = asyncio.create_task(queue.get())
        await asyncio.sleep(0)
        queue.shut_down()
        assert queue.shutting_down
        assert await asyncio.wait_for(getter, 1) is None
        queue.add("a")
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_shut_down_drains_first(self):
        queue = WorkQueue("test")
        queue.add("a")
        queue.shut_down()
        assert await queue.get() == "a"
        assert await queue.get() is None

    @pytest.mark.asyncio
    async def test_add_after(self):
        queue = WorkQueue("test")
        queue.add_after("a", 0.01)
        assert len(queue) == 0
        assert await asyncio.wait_for(queue.get(), 1) == "a"

    @pytest.mark.asyncio
    async def test_shut_down_cancels_delayed(self):
        queue = WorkQueue("test")
        queue.add_after("a", 0.01)
        queue.shut_down()
        await asyncio.sleep(0.03)
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_add_rate_limited_counts_requeues(self):
        queue = WorkQueue("test", ItemExponentialRateLimiter(base_delay=0.001, max_delay=0.01))
        queue.add_rate_limited("a")
        assert queue.num_requeues("a") == 1
        assert await asyncio.wait_for(queue.get(), 1) == "a"
        queue.forget("a")
        assert queue.num_requeues("a") == 0

    @pytest.mark.asyncio
    async def test_sensor_hooks(self):
        sensor = Mock()
        queue = WorkQueue("RecoveryRequest", sensor=sensor)
        queue.add("a")
        sensor.on_reconcile_queued.assert_called_once_with("RecoveryRequest", "a", 1)
        await queue.get()
        assert sensor.on_reconcile_dequeued.call_args[0][:2] == ("RecoveryRequest", "a")
