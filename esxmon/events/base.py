"""Event model and output interface.

This module defines the classified event record produced for every event
received from the management endpoint, and the sink interface those records
are forwarded to.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Sequence


class EventCategory(str, Enum):
    """Virtual machine lifecycle phases reported by the endpoint."""

    BEING_CREATED = "being-created"
    CREATED = "created"
    REMOVED = "removed"
    STARTING = "starting"
    POWERED_ON = "powered-on"
    SUSPENDING = "suspending"
    SUSPENDED = "suspended"
    RESUMING = "resuming"
    STOPPING = "stopping"
    POWERED_OFF = "powered-off"
    RESETTING = "resetting"
    REGISTERED = "registered"
    RECONFIGURED = "reconfigured"

    # Any event kind not listed above
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class ClassifiedEvent:
    """A normalized event record.

    Attributes:
        category: Lifecycle category of the event
        object_name: Name of the associated VM, if the event carries one
        object_ref: Managed object id of the associated VM (e.g. "vm-100")
        unrecognized_type: Runtime type name, set only for UNRECOGNIZED
        event_key: Endpoint-assigned event key
        created_time: When the endpoint recorded the event
        user_name: User that triggered the event
        message: Full formatted message, when the endpoint provides one
    """

    category: EventCategory
    object_name: str | None = None
    object_ref: str | None = None
    unrecognized_type: str | None = None
    event_key: int | None = None
    created_time: datetime | None = None
    user_name: str | None = None
    message: str | None = None

    @property
    def recognized(self) -> bool:
        return self.category is not EventCategory.UNRECOGNIZED

    @property
    def severity(self) -> int:
        """Log level for this event: INFO when recognized, DEBUG otherwise."""
        return logging.INFO if self.recognized else logging.DEBUG

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "object_name": self.object_name,
            "object_ref": self.object_ref,
            "unrecognized_type": self.unrecognized_type,
            "event_key": self.event_key,
            "created_time": self.created_time.isoformat() if self.created_time else None,
            "user_name": self.user_name,
            "message": self.message,
        }


class EventSink(ABC):
    """Destination for classified events.

    The dispatcher calls record() once per event, sequentially. A sink may
    raise; the dispatcher contains the failure and continues with the next
    event.
    """

    @abstractmethod
    def record(self, event: ClassifiedEvent) -> None:
        """Deliver one classified event."""


# Per-batch callback: (scope reference, raw events in endpoint order)
BatchCallback = Callable[[Any, Sequence[Any]], Any]
