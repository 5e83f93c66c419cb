"""
Per-orchestrator lifecycle event bus.
"""

import itertools
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from ..models.events import EventType, OrchestratorEvent
from ..utils.logging import get_logger

EventCallback = Callable[[OrchestratorEvent], None]


class EventBus:
    """Fans lifecycle events out to subscribed callbacks."""

    def __init__(self):
        self.logger = get_logger(f"{__name__}.EventBus")
        self._subscribers: Dict[int, Tuple[EventCallback, Optional[Set[EventType]]]] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        callback: EventCallback,
        event_types: Optional[Iterable[EventType]] = None
    ) -> int:
        """
        Register a callback.

        Args:
            callback: Called with every matching event
            event_types: Restrict delivery to these types; all types when None

        Returns:
            int: Subscription id for unsubscribe
        """
        if not callable(callback):
            raise TypeError("Event callback must be callable")
        types = {EventType(t) for t in event_types} if event_types is not None else None
        subscription_id = next(self._ids)
        self._subscribers[subscription_id] = (callback, types)
        return subscription_id

    def unsubscribe(self, subscription_id: int) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        return self._subscribers.pop(subscription_id, None) is not None

    def emit(self, event_type: EventType, **fields) -> OrchestratorEvent:
        """Build an event and deliver it to every matching subscriber."""
        event = OrchestratorEvent(type=event_type, **fields)

        # Snapshot so callbacks may unsubscribe while being notified
        for callback, types in list(self._subscribers.values()):
            if types is not None and event.type not in types:
                continue
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"Event callback failed for {event.type.value}: {e}")

        return event

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
