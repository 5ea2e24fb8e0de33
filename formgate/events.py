"""Submission events and their dispatch.

The runtime emits a SubmissionEvent once it has decided a request: accepted,
accepted-as-spam, or rejected. Notification delivery subscribes to accepted
events. Dispatch is fire-and-forget: listener failures are logged and never
reach the caller, and an optional executor moves listeners off the request
path entirely.
"""

import json
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from formgate.types import EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionEvent:
    """A decided submission.

    Attributes:
        type: Event type
        form_id: Form the request targeted
        ts: When the decision was made
        submission_id: Stored submission id (None for rejections)
        payload: Event-specific data (form name, recipients, rejection reason)

    Examples:
        >>> from datetime import datetime, timezone
        >>> event = SubmissionEvent(
        ...     type=EventType.SUBMISSION_ACCEPTED,
        ...     form_id="form_1",
        ...     ts=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ...     submission_id="sub_1",
        ... )
        >>> event.to_dict()["type"]
        'submission.accepted'
    """
    type: EventType
    form_id: str
    ts: datetime
    submission_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if isinstance(self.type, str) and not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType(self.type))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "formId": self.form_id,
            "ts": self.ts.isoformat(),
        }
        if self.submission_id is not None:
            result["submissionId"] = self.submission_id
        if self.payload is not None:
            result["payload"] = self.payload
        return result

    def to_jsonl(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionEvent":
        return cls(
            type=EventType(data["type"]),
            form_id=data["formId"],
            ts=datetime.fromisoformat(data["ts"].replace("Z", "+00:00")),
            submission_id=data.get("submissionId"),
            payload=data.get("payload"),
        )


EventListener = Callable[[SubmissionEvent], None]


class EventEmitter:
    """Dispatches submission events to listeners.

    Features:
    - Type-specific and wildcard subscriptions
    - Listeners called in registration order
    - Listener exceptions logged and isolated from other listeners and the caller
    - Optional executor for asynchronous, fire-and-forget dispatch

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on(EventType.SUBMISSION_ACCEPTED, seen.append)
        >>> emitter.listener_count()
        1
    """

    def __init__(self, executor: Optional[Executor] = None):
        self.executor = executor
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        """Subscribe a listener to one event type.

        Args:
            event_type: Event type to listen for
            listener: Called with each matching SubmissionEvent
        """
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        """Subscribe a listener to every event type."""
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        """Remove a listener registered with on(). Unknown listeners are ignored."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: SubmissionEvent) -> None:
        """Dispatch an event to type-specific listeners, then wildcard listeners."""
        listeners = list(self._listeners.get(event.type, [])) + list(self._any_listeners)
        for listener in listeners:
            if self.executor is not None:
                try:
                    self.executor.submit(self._call, listener, event)
                except RuntimeError:
                    logger.warning("Executor unavailable, dropping %s for form %s", event.type.value, event.form_id)
            else:
                self._call(listener, event)

    @staticmethod
    def _call(listener: EventListener, event: SubmissionEvent) -> None:
        try:
            listener(event)
        except Exception:
            logger.exception("Listener failed for %s on form %s", event.type.value, event.form_id)

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count listeners.

        Args:
            event_type: Only count listeners for this type (wildcards excluded)

        Returns:
            Number of registered listeners
        """
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


__all__ = [
    "SubmissionEvent",
    "EventListener",
    "EventEmitter",
]
