"""In-process domain events.

Services publish an envelope dict carrying ``event_type``; the envelope is
stamped with the request correlation id, kept in ``published_events`` for
inspection and dispatched synchronously to subscribers of that type.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from salesflow.context import get_correlation_id


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[InternalEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers[event_name]
        if handler not in handlers:
            handlers.append(handler)

    def dispatch(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in tuple(self._handlers.get(event_name, ())):
            handler(event)


event_bus = EventBus()
published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> None:
    envelope.setdefault("correlation_id", None)
    if envelope["correlation_id"] is None:
        envelope["correlation_id"] = get_correlation_id()
    published_events.append(envelope)

    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.dispatch(event_type, envelope)
