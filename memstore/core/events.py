"""
Domain events emitted by the record store.

Events are staged while a write transaction is open and delivered only
after it commits, so subscribers never observe a rolled-back change.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .metadata import MetadataDocument
from ..util.logging import logger


class RecordEventKind(str, Enum):
    INSERTED = "INSERTED"
    UPDATED = "UPDATED"
    SOFT_DELETED = "SOFT_DELETED"
    HARD_DELETED = "HARD_DELETED"


@dataclass
class RecordEvent:
    kind: RecordEventKind
    memory_id: str
    owner: Optional[str]
    occurred_at: datetime
    # Metadata before and after the change; None where the record did not
    # exist (before INSERTED) or no longer exists (after HARD_DELETED)
    old_metadata: Optional[MetadataDocument] = None
    new_metadata: Optional[MetadataDocument] = None
    # Whether the record counted as active before the change
    was_active: bool = False
    details: dict = field(default_factory=dict)


EventHandler = Callable[[RecordEvent], None]


class EventBus:
    """Synchronous publish/subscribe with a per-thread staging outbox."""

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._local = threading.local()

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def _outbox(self) -> List[RecordEvent]:
        if not hasattr(self._local, "outbox"):
            self._local.outbox = []
        return self._local.outbox

    def stage(self, event: RecordEvent) -> None:
        self._outbox().append(event)

    def discard(self) -> None:
        self._outbox().clear()

    def flush(self) -> int:
        """Deliver staged events in order. Returns the number delivered."""
        outbox = self._outbox()
        events = list(outbox)
        outbox.clear()
        for event in events:
            self.publish(event)
        return len(events)

    def publish(self, event: RecordEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                # A failing subscriber must not undo or fail a committed write
                logger.error(f"Event handler {getattr(handler, '__name__', handler)!s} failed "
                             f"for {event.kind.value} {event.memory_id}: {e}")
