"""Tests for the keyed work queue."""

from __future__ import annotations

import asyncio

import pytest

from ingressbridge.controller.queue import WorkQueue


class TestDeduplication:
    """Tests for key coalescing."""

    @pytest.mark.asyncio
    async def test_duplicate_adds_coalesced(self):
        queue = WorkQueue()
        queue.add("web/shop")
        queue.add("web/shop")
        queue.add("web/blog")

        assert len(queue) == 2
        assert await queue.get() == "web/shop"
        assert await queue.get() == "web/blog"

    @pytest.mark.asyncio
    async def test_add_while_processing_is_deferred(self):
        """A key being processed is never handed out twice."""
        queue = WorkQueue()
        queue.add("web/shop")
        key = await queue.get()

        queue.add(key)
        assert len(queue) == 0

        queue.done(key)
        assert len(queue) == 1
        assert await queue.get() == "web/shop"

    @pytest.mark.asyncio
    async def test_done_without_readd(self):
        queue = WorkQueue()
        queue.add("web/shop")
        queue.done(await queue.get())
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_join(self):
        queue = WorkQueue()
        queue.add("web/shop")

        async def worker():
            key = await queue.get()
            queue.done(key)

        await asyncio.gather(worker(), asyncio.wait_for(queue.join(), timeout=1))


class TestRetry:
    """Tests for retry with backoff."""

    @pytest.mark.asyncio
    async def test_backoff_doubles_and_caps(self):
        queue = WorkQueue(max_retries=10, base_delay=1.0, max_delay=5.0)
        delays = []
        for _ in range(4):
            queue.retry("web/shop")
            delays.append(queue.backoff("web/shop"))
        queue.shutdown()

        assert delays == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_retry_requeues_after_delay(self):
        queue = WorkQueue(base_delay=0.01)

        assert queue.retry("web/shop") is True
        assert len(queue) == 0
        key = await asyncio.wait_for(queue.get(), timeout=1)

        assert key == "web/shop"
        assert queue.failures("web/shop") == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        queue = WorkQueue(max_retries=2, base_delay=10.0)

        assert queue.retry("web/shop") is True
        assert queue.retry("web/shop") is True
        assert queue.retry("web/shop") is False
        assert queue.failures("web/shop") == 0
        queue.shutdown()

    @pytest.mark.asyncio
    async def test_forget(self):
        queue = WorkQueue(base_delay=10.0)
        queue.retry("web/shop")
        queue.forget("web/shop")
        assert queue.failures("web/shop") == 0
        queue.shutdown()


class TestShutdown:
    """Tests for queue shutdown."""

    @pytest.mark.asyncio
    async def test_add_ignored_after_shutdown(self):
        queue = WorkQueue()
        queue.shutdown()
        queue.add("web/shop")
        assert len(queue) == 0
        assert queue.is_shutdown is True

    @pytest.mark.asyncio
    async def test_pending_retries_cancelled(self):
        queue = WorkQueue(base_delay=0.01)
        queue.retry("web/shop")
        queue.shutdown()

        await asyncio.sleep(0.05)

        assert len(queue) == 0
