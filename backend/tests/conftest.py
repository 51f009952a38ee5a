"""Pytest fixtures for backend tests."""
import asyncio
from typing import Any, Coroutine, Generator

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from crashgame.config import settings
from crashgame.events import EventBus
from crashgame.logic.engine import RoundEngine
from crashgame.logic.game_config import GameContext
from crashgame.logic.rng import SeededRNG
from crashgame.logic.scheduler import Callback, Scheduler
from crashgame.main import app
from crashgame.storage import MemoryStore, RedisStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (real-time timers or large simulations)"
    )


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self.fail = False  # Raise ConnectionError on every call when set

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("mock redis is down")

    async def get(self, key: str) -> str | None:
        self._check()
        return self._store.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._check()
        self._store[key] = value
        return True

    async def delete(self, key: str) -> int:
        self._check()
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()


class ManualTimer:
    """Timer registered on a ManualScheduler."""

    def __init__(self, due: float, interval: float | None, callback: Callback, seq: int):
        self.due = due
        self.interval = interval
        self.callback = callback
        self.seq = seq
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """
    Scheduler with a virtual clock.

    Nothing fires until ``advance`` is called; timers then fire in deadline
    order with ``now()`` set to each deadline. Spawned coroutines run as
    real tasks; ``settle`` waits for them.
    """

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self._now = start_ms
        self._timers: list[ManualTimer] = []
        self._tasks: list[asyncio.Task] = []
        self._seq = 0

    def now(self) -> float:
        return self._now

    def _register(self, delay_ms: float, interval: float | None, callback: Callback) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self._now + delay_ms, interval, callback, self._seq)
        self._timers.append(timer)
        return timer

    def call_later(self, delay_ms: float, callback: Callback) -> ManualTimer:
        return self._register(delay_ms, None, callback)

    def call_every(self, interval_ms: float, callback: Callback) -> ManualTimer:
        return self._register(interval_ms, interval_ms, callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.append(task)
        return task

    @property
    def active_timers(self) -> list[ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    @property
    def repeating_timers(self) -> list[ManualTimer]:
        return [t for t in self.active_timers if t.interval is not None]

    def advance(self, ms: float) -> None:
        target = self._now + ms
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._now = timer.due
            if timer.interval is None:
                timer.cancelled = True
            else:
                timer.due += timer.interval
            timer.callback()
        self._now = target
        self._timers = self.active_timers

    async def settle(self) -> None:
        """Run spawned tasks to completion."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def redis_store_with_mock(mock_redis: MockRedis) -> Generator[RedisStore, None, None]:
    """Create RedisStore with mock client."""
    store = RedisStore()
    store._client = mock_redis
    yield store
    mock_redis.clear()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def context(memory_store: MemoryStore) -> GameContext:
    return GameContext(memory_store)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def engine(context: GameContext, scheduler: ManualScheduler, bus: EventBus) -> RoundEngine:
    """Engine on a virtual clock with deterministic seeds."""
    return RoundEngine(context, scheduler, bus, rng=SeededRNG(seed=42))


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """TestClient with a fresh in-memory runtime and the engine not started."""
    monkeypatch.setattr(settings, "autostart_engine", False)
    monkeypatch.setattr(settings, "storage_backend", "memory")

    with TestClient(app) as test_client:
        yield test_client
