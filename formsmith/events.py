"""Audit events for form and submission activity.

Publication transitions, form edits and submission activity each produce a
FormEvent. Events are immutable; the EventEmitter hands them to listeners
(webhooks, analytics counters, audit logs) synchronously.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
import json
import logging

from dateutil import parser as date_parser

from formsmith.types import EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """A single audit record.

    Attributes:
        event_id: Unique event identifier (e.g., "evt_3f9a...")
        type: Event type from EventType enum
        form_id: Form the event relates to
        ts: UTC timestamp when the event occurred
        actor_id: User record id of the caller, or None for anonymous callers
        submission_id: Submission the event relates to, if any
        payload: Optional event-specific data

    Examples:
        >>> from datetime import datetime, timezone
        >>> event = FormEvent(
        ...     event_id="evt_001",
        ...     type=EventType.FORM_PUBLISHED,
        ...     form_id="form_001",
        ...     ts=datetime.now(timezone.utc),
        ...     actor_id="user_001",
        ... )
        >>> event.to_dict()["type"]
        'form.published'
    """
    event_id: str
    type: EventType
    form_id: str
    ts: datetime
    actor_id: Optional[str] = None
    submission_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            object.__setattr__(self, "type", EventType(self.type))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result: Dict[str, Any] = {
            "eventId": self.event_id,
            "type": self.type.value,
            "formId": self.form_id,
            "ts": self.ts.isoformat(),
            "actorId": self.actor_id,
        }
        if self.submission_id is not None:
            result["submissionId"] = self.submission_id
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    def to_jsonl(self) -> str:
        """Convert event to a single JSON line."""
        return json.dumps(self.to_dict(), separators=(',', ':'))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormEvent":
        """Create FormEvent from dictionary (camelCase keys)."""
        return cls(
            event_id=data["eventId"],
            type=EventType(data["type"]),
            form_id=data["formId"],
            ts=date_parser.isoparse(data["ts"]),
            actor_id=data.get("actorId"),
            submission_id=data.get("submissionId"),
            payload=data.get("payload"),
        )


EventListener = Callable[[FormEvent], None]


class EventEmitter:
    """Dispatches FormEvents to subscribed listeners.

    Listeners for a specific type run first, then wildcard listeners, each in
    registration order. A failing listener is logged and does not stop the
    others or the operation that emitted the event.

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.FORM_PUBLISHED, seen.append)
        >>> emitter.listener_count()
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: FormEvent) -> None:
        """Dispatch an event to all registered listeners."""
        listeners = list(self._listeners.get(event.type, [])) + list(self._any_listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed for {event.type.value} ({event.event_id})")

    def clear(self) -> None:
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count registered listeners, for one type or in total."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(l) for l in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventListener",
    "EventEmitter",
]
