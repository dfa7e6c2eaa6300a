from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Protocol
from uuid import uuid4

from opentelemetry import trace

from eventboard.core.config import get_settings
from eventboard.services.models import utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EVENT_SUBMITTED = "event.submitted"
EVENT_APPROVED = "event.approved"
EVENT_REJECTED = "event.rejected"
EVENT_REVERTED_TO_DRAFT = "event.reverted_to_draft"
ALL_NOTIFICATIONS = "*"


@dataclass(frozen=True, slots=True)
class DomainNotification:
    event_name: str
    aggregate_id: str
    actor_id: str
    tenant_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)
    notification_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))


Listener = Callable[[DomainNotification], Awaitable[None] | None]


class DomainEventPublisher(Protocol):
    def emit(self, notification: DomainNotification) -> None: ...


class NotificationBus:
    """In-process fan-out of domain notifications.

    `emit` never blocks and never raises because of a listener. Listeners run on
    a single dispatcher task, each bounded by a timeout, with failures logged.
    """

    def __init__(self, *, queue_size: int = 1000, listener_timeout_seconds: float = 5.0) -> None:
        self.queue_size = max(1, queue_size)
        self.listener_timeout_seconds = max(0.001, listener_timeout_seconds)
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._queue: asyncio.Queue[DomainNotification | None] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, event_name: str, listener: Listener) -> None:
        self._listeners[event_name].append(listener)

    def listeners_for(self, event_name: str) -> list[Listener]:
        return [*self._listeners.get(event_name, ()), *self._listeners.get(ALL_NOTIFICATIONS, ())]

    def emit(self, notification: DomainNotification) -> None:
        if self._queue is None or not self.running:
            logger.warning(
                "notification bus not running; dropping %s aggregate_id=%s",
                notification.event_name,
                notification.aggregate_id,
            )
            return
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            logger.warning(
                "notification queue full (size=%s); dropping %s aggregate_id=%s",
                self.queue_size,
                notification.event_name,
                notification.aggregate_id,
            )

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._task = asyncio.create_task(self._run(self._queue), name="notification-bus")

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the dispatcher."""
        if self._queue is None or self._task is None:
            return
        queue, task = self._queue, self._task
        self._queue = None
        # Sentinel goes behind anything already queued.
        await queue.put(None)
        await task
        self._task = None

    async def _run(self, queue: asyncio.Queue[DomainNotification | None]) -> None:
        while True:
            notification = await queue.get()
            if notification is None:
                return
            await self.dispatch(notification)

    async def dispatch(self, notification: DomainNotification) -> None:
        with tracer.start_as_current_span("notifications.dispatch") as span:
            span.set_attribute("notification.name", notification.event_name)
            span.set_attribute("notification.aggregate_id", notification.aggregate_id)
            for listener in self.listeners_for(notification.event_name):
                await self._call_listener(listener, notification)

    async def _call_listener(self, listener: Listener, notification: DomainNotification) -> None:
        name = getattr(listener, "__qualname__", repr(listener))
        try:
            await asyncio.wait_for(self._invoke(listener, notification), timeout=self.listener_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "listener %s timed out after %.1fs for %s aggregate_id=%s",
                name,
                self.listener_timeout_seconds,
                notification.event_name,
                notification.aggregate_id,
            )
        except Exception:
            logger.exception(
                "listener %s failed for %s aggregate_id=%s",
                name,
                notification.event_name,
                notification.aggregate_id,
            )

    @staticmethod
    async def _invoke(listener: Listener, notification: DomainNotification) -> None:
        # Sync listeners run on a worker thread so a slow one cannot stall the loop.
        if inspect.iscoroutinefunction(listener):
            await listener(notification)
            return
        result = await asyncio.to_thread(listener, notification)
        if inspect.isawaitable(result):
            await result


def log_moderation_notification(notification: DomainNotification) -> None:
    payload = notification.payload
    title = payload.get("title")
    if notification.event_name == EVENT_SUBMITTED:
        logger.info(
            "event submitted for moderation: %s (%s) by user %s",
            title,
            notification.aggregate_id,
            notification.actor_id,
        )
    elif notification.event_name == EVENT_APPROVED:
        logger.info(
            "event approved: %s (%s) by moderator %s",
            title,
            notification.aggregate_id,
            payload.get("moderator_id"),
        )
    elif notification.event_name == EVENT_REJECTED:
        logger.info(
            "event rejected: %s (%s) by moderator %s reason=%r",
            title,
            notification.aggregate_id,
            payload.get("moderator_id"),
            payload.get("reason"),
        )
    elif notification.event_name == EVENT_REVERTED_TO_DRAFT:
        logger.info(
            "event reverted to draft: %s (%s) from status %s",
            title,
            notification.aggregate_id,
            payload.get("previous_status"),
        )


def register_default_listeners(bus: NotificationBus) -> None:
    for event_name in (EVENT_SUBMITTED, EVENT_APPROVED, EVENT_REJECTED, EVENT_REVERTED_TO_DRAFT):
        bus.subscribe(event_name, log_moderation_notification)


@lru_cache
def get_notification_bus() -> NotificationBus:
    settings = get_settings()
    bus = NotificationBus(
        queue_size=settings.notification_queue_size,
        listener_timeout_seconds=settings.notification_listener_timeout_seconds,
    )
    register_default_listeners(bus)
    return bus
