"""Bounded FIFO semaphores guarding shared resources.

This module implements the concurrency pools that bound in-flight model
calls and browser sessions process-wide, and the per-audit section limiter.
Holders receive an explicit ticket that must be released exactly once.
"""

import asyncio
import itertools
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Deque, Dict, Optional

from ...config import get_settings
from ..errors import SemaphoreError


logger = logging.getLogger(__name__)


class SemaphoreTicket:
    """Proof of holding one slot of a BoundedSemaphore."""

    _ids = itertools.count(1)

    def __init__(self, semaphore: "BoundedSemaphore"):
        self.semaphore = semaphore
        self.ticket_id = next(self._ids)
        self.released = False

    def __repr__(self) -> str:
        state = "released" if self.released else "held"
        return f"SemaphoreTicket({self.semaphore.name}#{self.ticket_id}, {state})"


class BoundedSemaphore:
    """Counting semaphore with FIFO waiter queue.

    Not re-entrant: a holder acquiring again from the same task consumes a
    second slot and may deadlock if the pool is exhausted.
    """

    def __init__(self, max_concurrent: int, name: str = "semaphore"):
        """Initialize semaphore.

        Args:
            max_concurrent: Maximum number of tickets held at once
            name: Pool name used in logs and stats
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.name = name
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

        self._stats = {
            "total_acquired": 0,
            "total_released": 0,
            "total_queued": 0,
            "peak_active": 0,
            "cancelled_waiters": 0,
        }

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def _grant(self) -> SemaphoreTicket:
        self._stats["total_acquired"] += 1
        self._stats["peak_active"] = max(self._stats["peak_active"], self._active)
        return SemaphoreTicket(self)

    async def acquire(self) -> SemaphoreTicket:
        """Wait for a free slot.

        Returns immediately when a slot is free and nobody is queued,
        otherwise waits behind earlier callers.

        Returns:
            Ticket to pass to ``release``
        """
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            ticket = self._grant()
            logger.debug(f"{self.name}: granted {ticket.ticket_id} ({self._active}/{self.max_concurrent})")
            return ticket

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._stats["total_queued"] += 1
        logger.debug(f"{self.name}: queued ({len(self._waiters)} waiting)")

        try:
            return await waiter
        except asyncio.CancelledError:
            self._stats["cancelled_waiters"] += 1
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self.release(waiter.result())
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self, ticket: SemaphoreTicket) -> None:
        """Return a slot, handing it directly to the longest waiter.

        Raises:
            SemaphoreError: If the ticket belongs to another pool or was
                already released
        """
        if ticket.semaphore is not self:
            raise SemaphoreError(f"Ticket {ticket!r} does not belong to {self.name}")
        if ticket.released:
            raise SemaphoreError(f"Ticket {ticket!r} released twice")
        ticket.released = True
        self._stats["total_released"] += 1

        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            next_ticket = self._grant()
            waiter.set_result(next_ticket)
            logger.debug(f"{self.name}: handed slot to {next_ticket.ticket_id}")
            return

        self._active -= 1
        logger.debug(f"{self.name}: released ({self._active}/{self.max_concurrent})")

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[SemaphoreTicket]:
        """Hold a slot for the duration of the block."""
        ticket = await self.acquire()
        try:
            yield ticket
        finally:
            self.release(ticket)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics for this pool."""
        return {
            "name": self.name,
            "max_concurrent": self.max_concurrent,
            "active": self._active,
            "waiting": self.waiting,
            **self._stats
        }


# Process-wide pools
_model_semaphore: Optional[BoundedSemaphore] = None
_browser_semaphore: Optional[BoundedSemaphore] = None


def get_model_semaphore() -> BoundedSemaphore:
    """Pool bounding concurrent analysis model calls."""
    global _model_semaphore
    if _model_semaphore is None:
        size = get_settings().concurrency.model_max_concurrent
        _model_semaphore = BoundedSemaphore(size, name="model")
    return _model_semaphore


def get_browser_semaphore() -> BoundedSemaphore:
    """Pool bounding concurrent browser sessions."""
    global _browser_semaphore
    if _browser_semaphore is None:
        size = get_settings().concurrency.browser_max_concurrent
        _browser_semaphore = BoundedSemaphore(size, name="browser")
    return _browser_semaphore


def create_section_limiter(max_concurrent: Optional[int] = None) -> BoundedSemaphore:
    """Per-audit limiter for analysis sections."""
    if max_concurrent is None:
        max_concurrent = get_settings().concurrency.audit_sections_max_concurrent
    return BoundedSemaphore(max_concurrent, name="audit-sections")


def reset_semaphores() -> None:
    """Drop the process-wide pools (used by tests and on reconfiguration)."""
    global _model_semaphore, _browser_semaphore
    _model_semaphore = None
    _browser_semaphore = None
