"""
Outbound notifications for a batch session.

State changes enqueue events here; the session drains the queue after a
poll cycle's merge has committed, so listeners see events in order and never
observe a half-applied cycle.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Kinds of batch notifications."""

    ASSET_READY = "asset_ready"
    ASSET_FAILED = "asset_failed"
    BATCH_COMPLETE = "batch_complete"


@dataclass
class BatchEvent:
    """One notification emitted by a batch session."""

    type: EventType
    message: str
    asset_key: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)


Listener = Callable[[BatchEvent], None]


class EventQueue:
    """Buffers events until they are drained to subscribers."""

    def __init__(self) -> None:
        self._pending: list[BatchEvent] = []
        self._listeners: list[Listener] = []
        self.history: list[BatchEvent] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, event: BatchEvent) -> None:
        self._pending.append(event)

    def clear(self) -> None:
        self._pending.clear()

    @property
    def pending(self) -> list[BatchEvent]:
        return list(self._pending)

    def drain(self) -> list[BatchEvent]:
        """Deliver pending events in emission order and return them."""
        delivered, self._pending = self._pending, []
        for event in delivered:
            self.history.append(event)
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as e:
                    # A broken listener must not stop delivery to the others
                    logger.error("Event listener failed", event_type=event.type.value, error=str(e))
        return delivered
