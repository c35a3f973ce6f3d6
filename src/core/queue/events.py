"""
Event system for translation queue observability.

Provides decoupled event publishing and subscription so the web layer, the CLI
and tests can follow a run without the scheduler knowing about them.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List
import time


class EventType(Enum):
    """Translation queue event types."""

    # Run-level events
    RUN_STARTED = "run_started"
    RUN_FINISHED = "run_finished"
    PROGRESS = "progress"

    # Chapter-level events
    UNITS_QUEUED = "units_queued"
    UNITS_REVERTED = "units_reverted"
    JOB_STARTED = "job_started"
    OUTPUT_DELTA = "output_delta"
    OUTPUT_RESET = "output_reset"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"

    # Provider events
    KEY_ROTATED = "key_rotated"


@dataclass
class Event:
    """Translation queue event.

    Attributes:
        type: Event type
        data: Event-specific data dictionary
        timestamp: Unix timestamp when event occurred
        source: Optional source identifier (e.g., "scheduler")
    """
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    source: str = "unknown"


class EventBus:
    """Central event bus for the translation queue."""

    def __init__(self):
        self._listeners: Dict[EventType, List[Callable]] = {}
        self._history: List[Event] = []
        self._record_history = False

    def subscribe(self, event_type: EventType, callback: Callable[[Event], None]) -> None:
        """Subscribe to an event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives Event object)
        """
        self._listeners.setdefault(event_type, []).append(callback)

    def subscribe_multiple(
        self,
        event_types: List[EventType],
        callback: Callable[[Event], None]
    ) -> None:
        for event_type in event_types:
            self.subscribe(event_type, callback)

    def subscribe_all(self, callback: Callable[[Event], None]) -> None:
        self.subscribe_multiple(list(EventType), callback)

    def unsubscribe(self, event_type: EventType, callback: Callable) -> None:
        if event_type in self._listeners:
            try:
                self._listeners[event_type].remove(callback)
            except ValueError:
                pass  # Callback not found

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers.

        A failing listener is logged and skipped; it never reaches the
        scheduler.
        """
        if self._record_history:
            self._history.append(event)

        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception as e:
                from src.utils.unified_logger import error
                error(f"Event listener failed on {event.type.value}: {e}")

    def emit(self, event_type: EventType, source: str = "scheduler", **data) -> None:
        """Shorthand for publish(Event(...))."""
        self.publish(Event(type=event_type, data=data, source=source))

    def enable_history(self) -> None:
        self._record_history = True

    def disable_history(self) -> None:
        self._record_history = False

    def get_history(self) -> List[Event]:
        """Get recorded event history.

        Returns:
            List of events in chronological order
        """
        return self._history.copy()

    def clear_history(self) -> None:
        self._history.clear()

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        return [e for e in self._history if e.type == event_type]
