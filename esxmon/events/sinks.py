"""Event sinks.

LoggingEventSink is the default output: one log record per classified event,
with the structured fields attached as logging extras so the JSON formatter
emits them as fields.
"""
from __future__ import annotations

import logging

from esxmon.events.base import ClassifiedEvent, EventCategory, EventSink

# Log message per category
CATEGORY_MESSAGES = {
    EventCategory.BEING_CREATED: "VM being created event received",
    EventCategory.CREATED: "VM created event received",
    EventCategory.REMOVED: "VM removed event received",
    EventCategory.STARTING: "VM starting event received",
    EventCategory.POWERED_ON: "VM powered on event received",
    EventCategory.SUSPENDING: "VM suspending event received",
    EventCategory.SUSPENDED: "VM suspended event received",
    EventCategory.RESUMING: "VM resuming event received",
    EventCategory.STOPPING: "VM stopping event received",
    EventCategory.POWERED_OFF: "VM powered off event received",
    EventCategory.RESETTING: "VM resetting event received",
    EventCategory.REGISTERED: "VM registered event received",
    EventCategory.RECONFIGURED: "VM reconfigure event received",
    EventCategory.UNRECOGNIZED: "Event ignored",
}


class LoggingEventSink(EventSink):
    """Writes each classified event to a logger."""

    def __init__(self, event_logger: logging.Logger | None = None):
        self.logger = event_logger or logging.getLogger("esxmon.events")

    def record(self, event: ClassifiedEvent) -> None:
        extra = {
            "category": event.category.value,
            "vm_name": event.object_name,
            "vm_ref": event.object_ref,
            "event_key": event.event_key,
        }
        if not event.recognized:
            extra["event_type"] = event.unrecognized_type

        self.logger.log(event.severity, CATEGORY_MESSAGES[event.category], extra=extra)


class CollectingEventSink(EventSink):
    """Keeps classified events in memory, for embedding and tests."""

    def __init__(self):
        self.events: list[ClassifiedEvent] = []

    def record(self, event: ClassifiedEvent) -> None:
        self.events.append(event)
