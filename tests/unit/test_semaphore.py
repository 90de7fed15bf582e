"""Unit tests for bounded FIFO semaphores."""

import asyncio

import pytest

from site_auditor.audit.errors import AuditError
from site_auditor.audit.queue.semaphore import (
    BoundedSemaphore,
    SemaphoreError,
    create_section_limiter,
    get_browser_semaphore,
    get_model_semaphore,
    reset_semaphores,
)


class TestBoundedSemaphore:
    """Tests for BoundedSemaphore."""

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            BoundedSemaphore(0)

    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        semaphore = BoundedSemaphore(2, name="test")

        ticket = await semaphore.acquire()
        assert semaphore.active == 1
        assert not ticket.released

        semaphore.release(ticket)
        assert semaphore.active == 0
        assert ticket.released

    @pytest.mark.asyncio
    async def test_bound_is_never_exceeded(self):
        """Concurrent holders never outnumber the pool size."""
        semaphore = BoundedSemaphore(3)
        in_flight = 0
        peak = 0

        async def worker():
            nonlocal in_flight, peak
            async with semaphore.slot():
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1

        await asyncio.gather(*[worker() for _ in range(12)])

        assert peak == 3
        assert semaphore.active == 0
        assert semaphore.get_stats()["peak_active"] <= 3

    @pytest.mark.asyncio
    async def test_waiters_are_granted_in_fifo_order(self):
        semaphore = BoundedSemaphore(1)
        holder = await semaphore.acquire()
        order = []

        async def waiter(index):
            ticket = await semaphore.acquire()
            order.append(index)
            semaphore.release(ticket)

        tasks = []
        for index in range(5):
            tasks.append(asyncio.create_task(waiter(index)))
            await asyncio.sleep(0)

        assert semaphore.waiting == 5
        semaphore.release(holder)
        await asyncio.gather(*tasks)

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_double_release_raises(self):
        semaphore = BoundedSemaphore(1)
        ticket = await semaphore.acquire()
        semaphore.release(ticket)

        with pytest.raises(SemaphoreError) as exc_info:
            semaphore.release(ticket)
        assert semaphore.active == 0
        assert isinstance(exc_info.value, AuditError)
        assert exc_info.value.error_code == "semaphore_misuse"

    @pytest.mark.asyncio
    async def test_foreign_ticket_raises(self):
        first = BoundedSemaphore(1, name="first")
        second = BoundedSemaphore(1, name="second")
        ticket = await first.acquire()

        with pytest.raises(SemaphoreError):
            second.release(ticket)

        first.release(ticket)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_leak_slot(self):
        semaphore = BoundedSemaphore(1)
        holder = await semaphore.acquire()

        waiting = asyncio.create_task(semaphore.acquire())
        await asyncio.sleep(0)
        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

        semaphore.release(holder)
        assert semaphore.active == 0

        ticket = await asyncio.wait_for(semaphore.acquire(), timeout=1)
        semaphore.release(ticket)
        assert semaphore.get_stats()["cancelled_waiters"] == 1

    @pytest.mark.asyncio
    async def test_slot_releases_on_error(self):
        semaphore = BoundedSemaphore(1)

        with pytest.raises(RuntimeError):
            async with semaphore.slot():
                raise RuntimeError("boom")

        assert semaphore.active == 0

    @pytest.mark.asyncio
    async def test_stats(self):
        semaphore = BoundedSemaphore(2, name="stats")
        first = await semaphore.acquire()
        second = await semaphore.acquire()
        semaphore.release(first)
        semaphore.release(second)

        stats = semaphore.get_stats()
        assert stats["name"] == "stats"
        assert stats["max_concurrent"] == 2
        assert stats["total_acquired"] == 2
        assert stats["total_released"] == 2
        assert stats["active"] == 0
        assert stats["waiting"] == 0


class TestProcessPools:
    """Tests for the process-wide pools."""

    def test_pools_are_shared_and_sized_from_settings(self):
        model = get_model_semaphore()
        browser = get_browser_semaphore()

        assert get_model_semaphore() is model
        assert get_browser_semaphore() is browser
        assert model.max_concurrent == 10
        assert browser.max_concurrent == 3

    def test_reset_creates_new_pools(self):
        model = get_model_semaphore()
        reset_semaphores()
        assert get_model_semaphore() is not model

    def test_section_limiter_is_per_call(self):
        first = create_section_limiter()
        second = create_section_limiter()

        assert first is not second
        assert first.max_concurrent == 2
        assert create_section_limiter(4).max_concurrent == 4
