"""
Time sources and timers for the security layer.

All security components read time in epoch milliseconds through a Clock and
defer work through a Scheduler, so expiry behaviour can be driven either by
the running event loop or, in tests, by advancing a ManualClock.
"""

import asyncio
import heapq
import itertools
import time
from typing import Callable, List, Optional, Tuple

from ..logging_config import get_logger


class TimerHandle:
    """Handle for a scheduled callback."""

    def __init__(self, cancel_callback: Optional[Callable[[], None]] = None):
        self._cancel_callback = cancel_callback
        self.cancelled = False

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        if self._cancel_callback is not None:
            self._cancel_callback()


class Clock:
    """Source of the current time in milliseconds."""

    def now(self) -> float:
        raise NotImplementedError


class Scheduler:
    """Defers callbacks by a number of milliseconds."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def call_repeating(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> float:
        return time.time() * 1000


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by an asyncio event loop.

    Uses the loop passed in, or the running loop at call time. Callbacks run
    on the loop thread, which keeps every security store single-threaded.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop
        self.logger = get_logger(__name__, 'scheduler')

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is not None:
            return self.loop
        return asyncio.get_running_loop()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        timer = self._get_loop().call_later(max(0.0, delay_ms) / 1000, callback)
        return TimerHandle(timer.cancel)

    def call_repeating(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        task = self._get_loop().create_task(self._run_repeating(interval_ms, callback))
        return TimerHandle(task.cancel)

    async def _run_repeating(self, interval_ms: float, callback: Callable[[], None]):
        while True:
            await asyncio.sleep(interval_ms / 1000)
            try:
                callback()
            except Exception as e:
                self.logger.error(
                    f"Error in scheduled job: {e}",
                    operation="repeating_job",
                    job=getattr(callback, '__qualname__', repr(callback))
                )


class ManualClock(Clock, Scheduler):
    """
    Deterministic clock and scheduler for tests.

    Time only moves when advance() is called; due callbacks fire in deadline
    order, and repeating callbacks are re-armed after each run.
    """

    def __init__(self, start_ms: float = 1_700_000_000_000):
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, Callable[[], None], Optional[float], TimerHandle]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        self._push(self._now + max(0.0, delay_ms), callback, None, handle)
        return handle

    def call_repeating(self, interval_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        self._push(self._now + interval_ms, callback, interval_ms, handle)
        return handle

    def _push(self, deadline, callback, interval, handle):
        heapq.heappush(self._queue, (deadline, next(self._sequence), callback, interval, handle))

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for entry in self._queue if not entry[4].cancelled)

    def advance(self, ms: float):
        """Move time forward, firing every callback that falls due."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            deadline, _, callback, interval, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = deadline
            callback()
            if interval is not None and not handle.cancelled:
                self._push(deadline + interval, callback, interval, handle)
        self._now = target
