"""Event handling for the vSphere listener.

This package subscribes to the vSphere event stream, classifies every event
into a VM lifecycle category and forwards the result to an event sink.

- VSphereEventDispatcher: collector-based subscription and batch dispatch
- classify: total mapping from raw vSphere events to ClassifiedEvent
- LoggingEventSink: default sink, one log record per event
"""

from esxmon.events.base import BatchCallback, ClassifiedEvent, EventCategory, EventSink
from esxmon.events.sinks import CollectingEventSink, LoggingEventSink
from esxmon.events.vsphere_events import (
    VM_EVENT_CATEGORY_MAP,
    DispatcherState,
    VSphereEventDispatcher,
    classify,
    event_type_name,
)

__all__ = [
    "BatchCallback",
    "ClassifiedEvent",
    "CollectingEventSink",
    "DispatcherState",
    "EventCategory",
    "EventSink",
    "LoggingEventSink",
    "VM_EVENT_CATEGORY_MAP",
    "VSphereEventDispatcher",
    "classify",
    "event_type_name",
]
