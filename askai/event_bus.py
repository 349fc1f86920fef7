import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


class AskEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    source: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus that feeds progress renderers."""

    def __init__(self):
        self._subscribers: List[Callable[[AskEvent], None]] = []

    def subscribe(self, callback: Callable[[AskEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[AskEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, source: str, payload: Dict[str, Any]) -> None:
        """Construct and broadcast an AskEvent to all subscribers."""
        event = AskEvent(
            event_type=event_type,
            source=source,
            payload=payload,
        )

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                # Subscriber failures stay with the subscriber
                logger.debug(f"[EVENTS] Subscriber failed on {event_type}: {e}")


# Global singleton instance for easy imports across the project
bus = EventBus()
