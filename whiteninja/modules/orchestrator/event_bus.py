"""
Build Event Bus - ordered pub/sub for one build session

┌───────────────────────────────────────────────────────────────┐
│  BuildSession.emit() ──► history (bounded, append-only)        │
│                     └──► subscribers, in registration order    │
│                          (WebSocket writer queue, tests, ...)  │
└───────────────────────────────────────────────────────────────┘

Publishing is synchronous: an event reaches every subscriber before the
emitting call returns, so subscribers observe events in emission order.
The history doubles as the "recent team activity" fed back into prompts.
"""

import json
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from whiteninja.core.config import settings
from whiteninja.core.logging_config import logger


class BuildEventType(str, Enum):
    """Server → observer message types"""
    AGENT_THINKING = "agent_thinking"
    AGENT_MESSAGE = "agent_message"
    FILE_CREATED = "file_created"
    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    PHASE_CHANGE = "phase_change"
    PHASE_SKIPPED = "phase_skipped"
    BUILD_PROGRESS = "build_progress"
    PREVIEW_UPDATE = "preview_update"
    REVIEW_COMMENT = "review_comment"
    BUG_REPORT = "bug_report"
    AGENT_ERROR = "agent_error"
    BUILD_ERROR = "build_error"
    BUILD_COMPLETE = "build_complete"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class BuildEvent:
    """An immutable record of something emitted to the observer"""
    type: BuildEventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.data, "timestamp": self.timestamp}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


EventHandler = Callable[[BuildEvent], None]


class EventBus:
    """
    Per-session event bus.

    Features:
    - Bounded append-only history
    - Typed and wildcard ("*") subscriptions
    - A failing handler is logged and never blocks the others
    """

    def __init__(self, session_id: str, max_history: int = None):
        self.session_id = session_id
        self._history: Deque[BuildEvent] = deque(maxlen=max_history or settings.EVENT_HISTORY_LIMIT)
        self._handlers: Dict[BuildEventType, List[EventHandler]] = {}
        self._wildcard_handlers: List[EventHandler] = []
        self._event_count = 0

    @property
    def event_count(self) -> int:
        return self._event_count

    def subscribe(self, event_type: Union[BuildEventType, str], handler: EventHandler) -> None:
        """Subscribe to one event type, or "*" for all"""
        if event_type == "*":
            self._wildcard_handlers.append(handler)
            return
        event_type = BuildEventType(event_type)
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Union[BuildEventType, str], handler: EventHandler) -> None:
        if event_type == "*":
            if handler in self._wildcard_handlers:
                self._wildcard_handlers.remove(handler)
            return
        handlers = self._handlers.get(BuildEventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def clear_subscribers(self) -> None:
        self._handlers.clear()
        self._wildcard_handlers.clear()

    def publish(self, event: BuildEvent) -> BuildEvent:
        self._event_count += 1
        self._history.append(event)

        handlers = list(self._handlers.get(event.type, [])) + list(self._wildcard_handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"[EventBus] Handler error for {event.type.value} in {self.session_id[:8]}: {e}")
        return event

    def emit(self, event_type: BuildEventType, data: Optional[Dict[str, Any]] = None) -> BuildEvent:
        """Build and publish an event"""
        return self.publish(BuildEvent(type=event_type, data=data or {}))

    def get_history(self, limit: Optional[int] = None,
                    event_types: Optional[List[BuildEventType]] = None) -> List[BuildEvent]:
        """Most recent events, oldest first"""
        events = list(self._history)
        if event_types:
            events = [e for e in events if e.type in event_types]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events
