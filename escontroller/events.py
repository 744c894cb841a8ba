# escontroller/events.py
from dataclasses import dataclass
from typing import List

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

EVENT_REASON_DELAYED = "Delayed"
EVENT_REASON_STALLED = "Stalled"
EVENT_REASON_UNHEALTHY = "Unhealthy"
EVENT_REASON_VALIDATION = "Validation"
EVENT_REASON_ASSOCIATION_ERROR = "AssociationError"
EVENT_REASON_COMPAT_CHECK_ERROR = "CompatibilityCheckError"
EVENT_REASON_UNEXPECTED = "Unexpected"


@dataclass(frozen=True)
class Event:
    type: str
    reason: str
    message: str


class EventRecorder:
    """In-memory queue of events collected during one reconcile pass."""

    def __init__(self):
        self._events: List[Event] = []

    def add_event(self, event_type: str, reason: str, message: str):
        self._events.append(Event(event_type, reason, message))

    def events(self) -> List[Event]:
        return list(self._events)
