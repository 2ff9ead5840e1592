"""Cancellable deadlines for the interaction loop.

Every delay in the kiosk (greeting grace period, hard reset, absence
window, recognition restart) is a :class:`Timer`.  Arming a timer always
cancels whatever it was waiting for before, and a generation counter
makes sure a callback that was already queued by the loop is dropped if
the timer has since been re-armed or cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay (seconds)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)


class Timer:
    """A single named, re-armable deadline."""

    def __init__(self, name: str, scheduler: Scheduler) -> None:
        self.name = name
        self._scheduler = scheduler
        self._handle: Optional[TimerHandle] = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        """Start the countdown from scratch, dropping any pending one."""
        self.cancel()
        generation = self._generation

        def _fire() -> None:
            if generation != self._generation:
                return
            self._handle = None
            logger.debug("Timer %s elapsed", self.name)
            callback()

        self._handle = self._scheduler.call_later(delay, _fire)

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
