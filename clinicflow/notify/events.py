"""Event bus: async pub/sub for SystemEvents.

Lifecycle, queue and wait-tracking code emits events here; the alert engine
and any notification adapter subscribe. Emitters never wait on subscribers.

Usage:
    from clinicflow.notify.events import emit, subscribe

    subscribe(on_overdue, [EventType.WAIT_THRESHOLD_EXCEEDED])

    await emit(SystemEvent(
        event_type=EventType.QUEUE_ENQUEUED,
        appointment_id=appointment.id,
        data={"priority": "urgent"},
    ))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from clinicflow.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Dispatches events to global and per-type subscribers.

    Events are queued and drained by a background worker once ``start()`` has
    been called (or lazily on first ``emit``). ``dispatch()`` bypasses the
    queue and delivers immediately.
    """

    def __init__(self) -> None:
        self._subscribers: list[EventHandler] = []
        self._type_subscribers: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        """Register a handler for all events, or only for ``event_types``."""
        if event_types is None:
            self._subscribers.append(handler)
            logger.info("Registered global event subscriber: %s", handler.__name__)
            return
        for et in event_types:
            self._type_subscribers.setdefault(et, []).append(handler)
        logger.info(
            "Registered event subscriber %s for types: %s",
            handler.__name__,
            [t.value for t in event_types],
        )

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)
        for handlers in self._type_subscribers.values():
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        """Drop every subscription."""
        self._subscribers.clear()
        self._type_subscribers.clear()

    # ── Publishing ───────────────────────────────────────────────────

    async def emit(self, event: SystemEvent) -> None:
        """Queue an event for background delivery."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._ensure_worker()
        await self._queue.put(event)
        logger.debug("Event emitted: %s (appointment=%s)", event.event_type.value, event.appointment_id)

    async def dispatch(self, event: SystemEvent) -> None:
        """Deliver an event to every matching subscriber now."""
        handlers = list(self._subscribers)
        handlers.extend(self._type_subscribers.get(event.event_type, []))
        if not handlers:
            return

        results = await asyncio.gather(
            *[self._safe_call(handler, event) for handler in handlers],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Event handler failed for %s: %s", event.event_type.value, result)

    @staticmethod
    async def _safe_call(handler: EventHandler, event: SystemEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler %s failed for event %s", handler.__name__, event.event_type.value)
            raise

    # ── Worker lifecycle ─────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def _ensure_worker(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._drain())
            logger.info("Event worker started")

    async def _drain(self) -> None:
        while self._queue is not None:
            try:
                event = await self._queue.get()
            except asyncio.CancelledError:
                logger.info("Event worker shutting down")
                break
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Error in event worker")
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        """Start the worker, keeping any events emitted before start."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._ensure_worker()
        logger.info(
            "Event bus started with %d global + %d typed subscribers",
            len(self._subscribers),
            sum(len(v) for v in self._type_subscribers.values()),
        )

    async def stop(self) -> None:
        """Deliver whatever is queued, then stop the worker."""
        if self._queue is not None and self.running:
            await self._queue.join()

        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass

        self._worker = None
        self._queue = None
        logger.info("Event bus stopped")


# Module-level singleton
event_bus = EventBus()


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    event_bus.subscribe(handler, event_types)


def unsubscribe(handler: EventHandler) -> None:
    event_bus.unsubscribe(handler)


async def emit(event: SystemEvent) -> None:
    await event_bus.emit(event)
