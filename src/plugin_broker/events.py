"""Broker lifecycle events and the in-process event bus.

Events are delivered synchronously, in publication order, to every
subscriber whose type filter matches. A failing subscriber is logged and
does not prevent delivery to the others.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Protocol

from pydantic import Field

from plugin_broker.model import RuntimeID, WireModel

logger = logging.getLogger(__name__)

STARTED_EVENT_TYPE = "broker/started"
RESULT_EVENT_TYPE = "broker/result"
LOG_EVENT_TYPE = "broker/log"

ALL_EVENT_TYPES = (STARTED_EVENT_TYPE, RESULT_EVENT_TYPE, LOG_EVENT_TYPE)


class BrokerStatus(str, Enum):
    STARTED = "STARTED"
    DONE = "DONE"
    FAILED = "FAILED"


class BrokerEvent(WireModel):
    """Base for events published on the bus.

    ``event_type`` doubles as the JSON-RPC notification method.
    """

    event_type: ClassVar[str] = ""

    runtime_id: RuntimeID = Field(default_factory=RuntimeID, alias="runtimeId")

    def to_params(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class StartedEvent(BrokerEvent):
    event_type: ClassVar[str] = STARTED_EVENT_TYPE

    status: BrokerStatus = BrokerStatus.STARTED


class FailedEvent(BrokerEvent):
    event_type: ClassVar[str] = RESULT_EVENT_TYPE

    status: BrokerStatus = BrokerStatus.FAILED
    error: str


class DoneEvent(BrokerEvent):
    event_type: ClassVar[str] = RESULT_EVENT_TYPE

    status: BrokerStatus = BrokerStatus.DONE
    tooling: str


class LogEvent(BrokerEvent):
    event_type: ClassVar[str] = LOG_EVENT_TYPE

    text: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Subscriber(Protocol):
    """Consumer of bus events. ``close`` runs when the bus is cleared."""

    async def accept(self, event: BrokerEvent) -> None: ...

    async def close(self) -> None: ...


class CallbackSubscriber:
    """Adapts a plain callable (sync or async) to :class:`Subscriber`."""

    def __init__(
        self,
        callback: Callable[[BrokerEvent], Awaitable[None] | None],
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._callback = callback
        self._on_close = on_close

    async def accept(self, event: BrokerEvent) -> None:
        result = self._callback(event)
        if result is not None:
            await result

    async def close(self) -> None:
        if self._on_close is not None:
            self._on_close()


class EventBus:
    """Fan-out of broker events to subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, frozenset[str]]] = []

    @property
    def subscribers(self) -> list[Subscriber]:
        return [sub for sub, _ in self._subscribers]

    def subscribe(self, subscriber: Subscriber, *event_types: str) -> None:
        """Attach a subscriber; no event types means every type."""
        self._subscribers.append((subscriber, frozenset(event_types)))

    async def publish(self, event: BrokerEvent) -> None:
        for subscriber, types in list(self._subscribers):
            if types and event.event_type not in types:
                continue
            try:
                await subscriber.accept(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed to accept event '%s'", subscriber, event.event_type
                )

    def clear(self) -> list[Subscriber]:
        """Detach all subscribers and return them so callers can close them."""
        removed = [sub for sub, _ in self._subscribers]
        self._subscribers = []
        return removed
