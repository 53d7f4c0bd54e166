"""Timer primitive and image decoding for replay.

`Scheduler` is the only source of time and deferred callbacks the player
uses. `AsyncioScheduler` runs on an event loop; `ManualScheduler` keeps a
virtual clock that only moves when `advance()` is called, which makes replay
timing deterministic for screenshots and tests.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class Scheduler(ABC):
    """Single-shot delayed callbacks plus a millisecond clock."""

    @abstractmethod
    def now(self) -> float:
        """Current time in milliseconds."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Any:
        """Arm a timer. The returned handle has `cancel()`."""

    @property
    def can_defer(self) -> bool:
        """Whether `call_later` can be used right now."""
        return True


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def can_defer(self) -> bool:
        if self._loop is not None:
            return True
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def now(self) -> float:
        return self.loop.time() * 1000

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)


class ManualTimer:
    """Handle for a ManualScheduler timer."""

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual-time scheduler.

    Example:
        scheduler = ManualScheduler()
        player = Player(host, recording, scheduler=scheduler)
        player.play()
        scheduler.advance(2000)
    """

    def __init__(self, start: float = 0):
        self._now = start
        self._timers: list[tuple[float, int, ManualTimer]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._timers, (timer.due, next(self._sequence), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._timers if not timer.cancelled)

    def advance(self, delay_ms: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._now + delay_ms
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            timer.callback()
        self._now = target

    def run_pending(self) -> None:
        """Fire timers that are already due without moving the clock."""
        self.advance(0)


class ImageDecoder(ABC):
    """Asynchronous data-URL decoding."""

    @abstractmethod
    def decode(self, data_url: str, on_load: Callable[[], None]) -> None:
        """Call `on_load` once the image is decoded."""


class ScheduledImageDecoder(ImageDecoder):
    """Completes every decode on the next scheduler turn.

    Without a usable scheduler (no running event loop) the decode completes
    immediately, so `seek()` and `step()` work synchronously.
    """

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler

    def decode(self, data_url: str, on_load: Callable[[], None]) -> None:
        if not self.scheduler.can_defer:
            on_load()
            return
        self.scheduler.call_later(0, on_load)
