"""
Observer list that delivers supervisor notifications in emission order
"""

import time
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional

from ..core.logging_config import get_logger

logger = get_logger(__name__)

ALL_EVENTS = "*"


class EventBus:
    """
    Per-supervisor event bus.

    Delivery is synchronous. An emit() issued by a listener while another
    event is being delivered is queued behind it, so every listener sees
    events in exactly the order they were emitted.
    """

    def __init__(self, max_history: int = 200):
        self.listeners: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)
        self.event_history: Deque[Any] = deque(maxlen=max_history)
        self._pending: Deque[Any] = deque()
        self._dispatching = False

        # Performance metrics
        self.event_counts: Dict[str, int] = defaultdict(int)
        self.listener_errors = 0

    def emit(self, event: Any):
        """Deliver an event (any notification with a type attribute)"""
        self._pending.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                self._dispatch(self._pending.popleft())
        finally:
            self._dispatching = False

    def on(self, event_type: str, callback: Callable[[Any], None]):
        """Register a listener for specific event type"""
        if callback not in self.listeners[event_type]:
            self.listeners[event_type].append(callback)

    def on_all(self, callback: Callable[[Any], None]):
        """Register a listener for all events"""
        self.on(ALL_EVENTS, callback)

    def off(self, event_type: str, callback: Callable[[Any], None]):
        if callback in self.listeners.get(event_type, []):
            self.listeners[event_type].remove(callback)

    def off_all(self, callback: Callable[[Any], None]):
        """Remove a listener from every event type"""
        for event_type in list(self.listeners):
            self.off(event_type, callback)

    def _dispatch(self, event: Any):
        self.event_counts[event.type] += 1
        self.event_history.append((time.time(), event))

        # Copy so listeners may unsubscribe during delivery
        targets = list(self.listeners.get(event.type, [])) + list(self.listeners.get(ALL_EVENTS, []))
        for listener in targets:
            try:
                listener(event)
            except Exception as e:
                self.listener_errors += 1
                logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "history_size": len(self.event_history),
            "listener_errors": self.listener_errors,
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }

    def get_recent_events(self, count: int = 50, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        events = [
            {"type": event.type, "emitted_at": emitted_at, **event.to_dict()}
            for emitted_at, event in self.event_history
            if event_type is None or event.type == event_type
        ]
        return events[-count:]
