"""Session event emitter for rendering surfaces.

The controller emits an event at every milestone of an exchange: entries
appended, fragments merged, status transitions, and the final resolution.
A terminal or GUI front end subscribes instead of polling the transcript.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events emitted during an exchange."""

    STATUS_CHANGED = "status_changed"
    ENTRY_APPENDED = "entry_appended"
    FRAGMENT_MERGED = "fragment_merged"
    ENTRY_REMOVED = "entry_removed"
    EXCHANGE_COMPLETED = "exchange_completed"
    EXCHANGE_FAILED = "exchange_failed"


class SessionEvent(BaseModel):
    """A single session event."""

    type: EventType = Field(description="Event type")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


EventListener = Callable[[SessionEvent], Any]


class SessionEventEmitter:
    """Broadcasts session events to registered listeners.

    Listeners can be sync or async callables. Listener exceptions are
    logged and never reach the controller, so a broken renderer cannot
    corrupt an exchange.
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        """Register a listener to receive session events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [ln for ln in self._listeners if ln is not listener]

    async def emit(self, event_type: EventType, **data: Any) -> None:
        """Dispatch a new event to every listener."""
        if not self._listeners:
            return

        event = SessionEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Session event listener error for %s", event_type)
