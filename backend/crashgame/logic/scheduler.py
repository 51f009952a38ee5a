"""
Timer and tick-source abstraction for the round engine.

The engine only talks to ``Scheduler`` and ``TickSource``; production uses
the asyncio loop, tests inject a manual scheduler with a virtual clock.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, Protocol

from crashgame.config import settings
from crashgame.logic.game_config import SimulationMode
from crashgame.validators import validate_update_interval

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    """Anything that can be cancelled."""

    def cancel(self) -> Any:
        ...


class Scheduler(ABC):
    """Clock, one-shot and repeating timers, and background tasks."""

    @abstractmethod
    def now(self) -> float:
        """Current time in epoch ms; never jumps with the wall clock."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms``."""

    @abstractmethod
    def call_every(self, interval_ms: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` every ``interval_ms`` until cancelled."""

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> TimerHandle:
        """Run a coroutine in the background."""


class _RepeatingTimer:
    """Fixed-rate timer on an asyncio loop; deadlines do not drift."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval_ms: float, callback: Callback):
        self._loop = loop
        self._interval = interval_ms / 1000
        self._callback = callback
        self._deadline = loop.time() + self._interval
        self._handle: asyncio.TimerHandle | None = loop.call_at(self._deadline, self._fire)
        self.cancelled = False

    def _fire(self) -> None:
        if self.cancelled:
            return
        self._deadline = max(self._deadline + self._interval, self._loop.time())
        self._handle = self._loop.call_at(self._deadline, self._fire)
        self._callback()

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        # Wall-clock anchor; time since then comes from the monotonic clock.
        self._epoch_ms = time.time() * 1000
        self._monotonic_start = time.monotonic()

    def now(self) -> float:
        return self._epoch_ms + (time.monotonic() - self._monotonic_start) * 1000

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay_ms / 1000, callback)

    def call_every(self, interval_ms: float, callback: Callback) -> TimerHandle:
        return _RepeatingTimer(asyncio.get_running_loop(), interval_ms, callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> TimerHandle:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())


class TickSource(ABC):
    """Drives the RUNNING tick loop."""

    @abstractmethod
    def start(self, scheduler: Scheduler, on_tick: Callback) -> TimerHandle:
        """Start ticking; the returned handle stops it."""


class FrameTickSource(TickSource):
    """Continuous mode: frame-rate ticks (~60 Hz) for smooth animation."""

    def __init__(self, frame_interval_ms: float | None = None):
        self.interval_ms = frame_interval_ms or settings.frame_interval_ms

    def start(self, scheduler: Scheduler, on_tick: Callback) -> TimerHandle:
        return scheduler.call_every(self.interval_ms, on_tick)


class IntervalTickSource(TickSource):
    """Discretized mode: fixed-interval ticks emulating server pushes."""

    def __init__(self, interval_ms: float):
        self.interval_ms = validate_update_interval(interval_ms)

    def start(self, scheduler: Scheduler, on_tick: Callback) -> TimerHandle:
        return scheduler.call_every(self.interval_ms, on_tick)


def select_tick_source(simulation: SimulationMode) -> TickSource:
    """Tick source for the simulation mode as it is right now."""
    if simulation.enabled:
        return IntervalTickSource(simulation.update_interval_ms)
    return FrameTickSource()
