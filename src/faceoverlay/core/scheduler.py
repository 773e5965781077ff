"""Cancellable repeating schedules.

The detection loop never talks to the event loop's timers directly; it asks a
``Scheduler`` for a ticket and cancels that ticket on stop. Tests substitute a
virtual clock so cadence and cancellation can be checked without real time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduleTicket(Protocol):
    """Handle to a repeating schedule."""

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel`` has been called."""
        ...

    def cancel(self) -> None:
        """Stop the schedule. No callback runs after this returns."""
        ...


class Scheduler(Protocol):
    """Factory for repeating schedules."""

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduleTicket:
        """Invoke ``callback`` every ``interval`` seconds until the ticket is cancelled."""
        ...


class _AsyncioTicket:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._deadline = loop.time() + interval
        self._handle: asyncio.TimerHandle = loop.call_at(self._deadline, self._fire)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def _fire(self) -> None:
        if self._cancelled:
            return
        # Fixed-rate: the next deadline does not drift with callback duration.
        self._deadline += self._interval
        now = self._loop.time()
        if self._deadline < now:
            missed = int((now - self._deadline) // self._interval) + 1
            self._deadline += missed * self._interval
            logger.debug("Schedule fell behind, skipped %d tick(s)", missed)
        self._handle = self._loop.call_at(self._deadline, self._fire)
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback raised")


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduleTicket:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        loop = self._loop or asyncio.get_running_loop()
        return _AsyncioTicket(loop, interval, callback)
