"""Notification channel.

Components emit :class:`Event` objects onto an :class:`EventBus`; consumers
(a push dispatcher, a websocket fan-out, tests) register handlers per event
type.  Delivery is a side channel: a failing handler is logged and never
propagates into the operation that emitted the event.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from tally.models import utcnow

logger = logging.getLogger(__name__)

MENTION_CREATED = "mention.created"
STATUS_CHANGED = "moderation.status_changed"
REPORT_RESOLVED = "report.resolved"
TIER_CHANGED = "reputation.tier_changed"

ALL_EVENTS = "*"


@dataclass
class Event:
    """A single notification addressed to ``recipient_id`` (may be empty)."""

    type: str
    recipient_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=utcnow)


Handler = Callable[[Event], None]


class EventBus:
    """In-process publish/subscribe registry."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Register *handler* for *event_type* (``"*"`` for everything)."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: Event) -> int:
        """Deliver *event* and return the number of handlers that succeeded."""
        delivered = 0
        for handler in [*self._handlers.get(event.type, []), *self._handlers.get(ALL_EVENTS, [])]:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s", handler, event.type)
                continue
            delivered += 1
        return delivered


class RecordingHandler:
    """Handler that keeps every event it sees; handy for inspection."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]
