"""
BankDash Dashboard - Timer Scheduling

Every timer the session layer arms is a single cancellable delayed task.

- AsyncioScheduler: wall-clock time, one asyncio task per timer
- ManualScheduler: virtual time advanced explicitly (tests)

Callbacks are coroutine functions taking no arguments.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Protocol

import structlog


logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class Timer(Protocol):
    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class Scheduler(Protocol):
    """Source of time and delayed callbacks for the session layer."""

    def now(self) -> datetime: ...

    def call_later(self, delay: float, callback: TimerCallback) -> Timer: ...


# =============================================================================
# Asyncio
# =============================================================================

class AsyncioTimer:
    """
    Delayed callback running in its own task.

    Once the callback has started, cancel() no longer interrupts it, so a
    callback may safely re-arm or cancel its owner's timers.
    """

    def __init__(self, delay: float, callback: TimerCallback):
        self._fired = False
        self._task = asyncio.create_task(self._run(max(delay, 0.0), callback))

    async def _run(self, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        self._fired = True
        try:
            await callback()
        except Exception:
            # Nobody awaits this task; report the failure here
            logger.exception(
                "timer_callback_failed",
                callback=getattr(callback, "__qualname__", repr(callback)),
            )

    @property
    def active(self) -> bool:
        return not self._fired and not self._task.done()

    def cancel(self) -> None:
        if self.active:
            self._task.cancel()


class AsyncioScheduler:
    """Wall-clock scheduler for the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: TimerCallback) -> AsyncioTimer:
        return AsyncioTimer(delay, callback)


# =============================================================================
# Virtual time
# =============================================================================

class ManualTimer:
    def __init__(self, when: datetime, seq: int, callback: TimerCallback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Scheduler whose clock only moves when advance() is awaited.

    Timers due within the advanced span fire in order of due time, then
    creation order. Timers armed by a firing callback are honoured if they
    fall due before the target time.
    """

    def __init__(self, start: datetime):
        self._now = start
        self._seq = 0
        self._timers: List[ManualTimer] = []

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(
            self._now + timedelta(seconds=max(delay, 0.0)),
            self._seq,
            callback,
        )
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of timers that are armed and not cancelled."""
        return sum(1 for t in self._timers if t.active)

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due."""
        target = self._now + timedelta(seconds=seconds)

        while True:
            due = [t for t in self._timers if t.active and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            if timer.when > self._now:
                self._now = timer.when
            timer.fired = True
            await timer.callback()

        self._now = target
        self._timers = [t for t in self._timers if t.active]

    async def run_due(self) -> None:
        """Fire timers that are already due without moving the clock."""
        await self.advance(0)
