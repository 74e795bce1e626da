"""
Change notifications for the accounting core.

Services publish a ``ChangeEvent`` after their transaction commits. Delivery
to clients (polling, websockets, push) is somebody else's job; subscribers
here only get told that something changed.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    employee_id: str
    resource_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "employee_id": self.employee_id,
            "resource_id": self.resource_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


Handler = Callable[[ChangeEvent], None]


class EventBus:
    """In-process publish/subscribe hub."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it."""
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event``; returns the number of handlers that accepted it."""
        handlers = list(self._handlers.get(event.event_type, [])) + list(self._handlers.get(ALL_EVENTS, []))
        delivered = 0

        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                # The state change is already committed; a broken subscriber must not undo it
                logger.exception(f"Change subscriber failed for {event.event_type} ({event.resource_id})")

        return delivered

    def clear(self):
        self._handlers.clear()


event_bus = EventBus()
