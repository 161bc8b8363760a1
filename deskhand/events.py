"""Progress events for deskhand.

The dispatcher publishes one "tool_used" event per tool invocation;
subscribers (the /events SSE stream) receive them from a background
task, so publishing never waits on an observer.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TOOL_USED = "tool_used"

EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    run_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON shape sent to SSE clients; data keys sit beside the envelope."""
        return {
            "type": self.type,
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            **self.data,
        }


class EventBus:
    """Queues progress events and fans them out to subscribers.

    Delivery is at-most-once. An event emitted while the queue is full
    is dropped, and a subscriber that raises is logged and skipped.
    """

    def __init__(self, max_queue: int = 1000):
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        subscribers = self._subscribers.get(event_type, [])
        if handler in subscribers:
            subscribers.remove(handler)

    async def emit(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Progress queue full, dropping %s event", event.type)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._pump(), name="progress-events")
        logger.info("Progress event delivery started")

    async def stop(self) -> None:
        """Stop the pump, then deliver whatever is still queued."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        while not self._queue.empty():
            await self._deliver(self._queue.get_nowait())
        logger.info("Progress event delivery stopped")

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            await self._deliver(event)

    async def _deliver(self, event: Event) -> None:
        for handler in list(self._subscribers.get(event.type, ())):
            try:
                await handler(event)
            except Exception:
                logger.exception("Subscriber %s failed on %s", handler.__qualname__, event.type)
