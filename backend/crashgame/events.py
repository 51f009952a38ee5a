"""Typed event bus between the round engine and its collaborators."""
import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable

from crashgame.protocol import EventPayload, EventType

logger = logging.getLogger(__name__)

Listener = Callable[[EventPayload], Any]


class Subscription:
    """Handle returned by ``EventBus.subscribe``; usable as a context manager."""

    def __init__(self, bus: "EventBus", event_type: EventType, listener: Listener):
        self.bus = bus
        self.event_type = event_type
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.bus._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class EventBus:
    """
    Synchronous fan-out of engine events.

    Listener failures are counted and logged, never raised into the engine.
    Coroutine listeners are scheduled as tasks on the running loop; ``drain``
    waits for them.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[EventType, list[Subscription]] = {t: [] for t in EventType}
        self._tasks: set[asyncio.Task] = set()
        self.listener_errors = 0

    def subscribe(self, event_type: EventType, listener: Listener) -> Subscription:
        subscription = Subscription(self, event_type, listener)
        self._subscriptions[event_type].append(subscription)
        return subscription

    def subscribe_all(self, listener: Callable[[EventType, EventPayload], Any]) -> list[Subscription]:
        """Subscribe one listener to every event type; it receives (type, payload)."""
        return [
            self.subscribe(event_type, lambda payload, t=event_type: listener(t, payload))
            for event_type in EventType
        ]

    def _remove(self, subscription: Subscription) -> None:
        listeners = self._subscriptions[subscription.event_type]
        if subscription in listeners:
            listeners.remove(subscription)

    def listener_count(self, event_type: EventType) -> int:
        return len(self._subscriptions[event_type])

    def emit(self, event_type: EventType, payload: EventPayload) -> None:
        # Snapshot: listeners may unsubscribe while being notified.
        for subscription in list(self._subscriptions[event_type]):
            self._safe_emit(subscription, payload)

    def _safe_emit(self, subscription: Subscription, payload: EventPayload) -> None:
        try:
            result = subscription.listener(payload)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
        except Exception as e:
            self._record_failure(subscription.event_type, e)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._record_failure(None, task.exception())

    def _record_failure(self, event_type: EventType | None, error: BaseException) -> None:
        self.listener_errors += 1
        logger.warning(
            "Event listener error (count=%d): %s - %s",
            self.listener_errors,
            event_type.value if event_type else "async",
            str(error),
        )

    async def drain(self) -> None:
        """Wait for pending coroutine listeners."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def clear(self) -> None:
        for listeners in self._subscriptions.values():
            for subscription in listeners:
                subscription.active = False
            listeners.clear()


class EventBuffer:
    """
    Bounded per-client event queue.

    When full, the oldest queued multiplierUpdate is dropped (or the oldest
    event if none is queued), so lifecycle events survive a slow reader.
    """

    def __init__(self, maxsize: int = 256):
        self.maxsize = maxsize
        self.dropped = 0
        self._items: deque[tuple[EventType, EventPayload]] = deque()
        self._ready = asyncio.Event()

    def __len__(self) -> int:
        return len(self._items)

    def put_nowait(self, event_type: EventType, payload: EventPayload) -> None:
        if len(self._items) >= self.maxsize:
            self._drop_one()
        self._items.append((event_type, payload))
        self._ready.set()

    def _drop_one(self) -> None:
        self.dropped += 1
        for i, (event_type, _) in enumerate(self._items):
            if event_type is EventType.MULTIPLIER_UPDATE:
                del self._items[i]
                return
        self._items.popleft()

    async def get(self) -> tuple[EventType, EventPayload]:
        while not self._items:
            self._ready.clear()
            await self._ready.wait()
        return self._items.popleft()


class LoggingEventSink:
    """Default subscriber that logs every engine event."""

    def __init__(self, bus: EventBus):
        self._subscriptions = bus.subscribe_all(self.emit)

    def emit(self, event_type: EventType, payload: EventPayload) -> None:
        if event_type is EventType.MULTIPLIER_UPDATE:
            logger.debug("EVENT %s: %s", event_type.value, payload.model_dump())
        else:
            logger.info("EVENT %s: %s", event_type.value, payload.model_dump())

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
