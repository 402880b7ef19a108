"""Event system for cmskit form sessions.

Form sessions report what happens to them through typed FormEvents dispatched
by an EventEmitter. The ``on_success`` / ``on_error`` / ``on_load_error``
callbacks accepted by a FormSession are invoked right after the matching
terminal event has been emitted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from .types import FormStatus


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Form session event types."""
    FORM_LOADED = "form.loaded"
    FORM_LOAD_FAILED = "form.load_failed"
    FIELD_UPDATED = "field.updated"
    VALIDATION_FAILED = "validation.failed"
    SUBMISSION_STARTED = "submission.started"
    SUBMISSION_SUCCEEDED = "submission.succeeded"
    SUBMISSION_FAILED = "submission.failed"
    FORM_RESET = "form.reset"


@dataclass(frozen=True)
class FormEvent:
    """A single event in a form session's lifecycle.

    Attributes:
        type: Event type from EventType enum
        form_slug: Slug of the form the session is bound to
        ts: UTC timestamp when the event occurred
        status: Session status after this event
        payload: Optional event-specific data (changed field, errors, response)
        error: The exception behind a failure event, if any

    Examples:
        >>> from datetime import datetime, timezone
        >>> event = FormEvent(
        ...     type=EventType.FORM_LOADED,
        ...     form_slug="contact",
        ...     ts=datetime.now(timezone.utc),
        ...     status=FormStatus.IDLE,
        ... )
        >>> event.to_dict()["type"]
        'form.loaded'
    """
    type: EventType
    form_slug: str
    ts: datetime
    status: FormStatus
    payload: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None

    def __post_init__(self):
        if isinstance(self.type, str) and not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType(self.type))
        if isinstance(self.status, str) and not isinstance(self.status, FormStatus):
            object.__setattr__(self, "status", FormStatus(self.status))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization.

        The exception, if any, is reduced to its message.
        """
        result: Dict[str, Any] = {
            "type": self.type.value,
            "formSlug": self.form_slug,
            "ts": self.ts.isoformat(),
            "status": self.status.value,
        }
        if self.payload is not None:
            result["payload"] = self.payload
        if self.error is not None:
            result["error"] = str(self.error)
        return result


EventListener = Callable[[FormEvent], None]
"""Type alias for event listener callbacks.

Event listeners are called synchronously when events are emitted. Their
return value is ignored.
"""


class EventEmitter:
    """Event emitter for managing event listeners and dispatching events.

    Features:
    - Type-specific subscriptions (listen to specific event types)
    - Wildcard subscriptions (listen to all events)
    - Synchronous dispatch (listeners called in registration order)
    - Error isolation (listener exceptions are logged, not propagated)

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.FORM_LOADED, seen.append)
        >>> emitter.listener_count(EventType.FORM_LOADED)
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Subscribe to a specific event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Subscribe to all event types (wildcard subscription)."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Unsubscribe from a specific event type. Unknown listeners are ignored."""
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        """Unsubscribe from wildcard subscription. Unknown listeners are ignored."""
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: FormEvent) -> None:
        """Dispatch an event to all registered listeners.

        Type-specific listeners run first, then wildcard listeners. A listener
        that raises is logged and skipped; the remaining listeners still run.
        """
        listeners = list(self._listeners.get(event.type, [])) + list(self._any_listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r failed handling %s for form '%s'",
                    listener, event.type.value, event.form_slug,
                )

    def clear(self) -> None:
        """Remove all event listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Get count of registered listeners.

        Args:
            event_type: If provided, count listeners for this type only.
                        If None, count all listeners (including wildcard).
        """
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventType",
    "EventListener",
    "EventEmitter",
]
