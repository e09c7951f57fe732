"""vSphere event stream dispatcher.

This module subscribes to the event history of a vSphere endpoint, scoped to
the default datacenter, and forwards a classified record for every event
received.

The vSphere API exposes events through an EventHistoryCollector:
- CreateCollectorForEvents builds a collector from an EventFilterSpec
- ReadNextEvents returns the events after the collector's position and
  advances it; it returns an empty list once the position is current

Reading is a blocking SOAP call, so every poll runs in a worker thread while
the event loop watches the stop event between batches.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Sequence

from pyVmomi import vim

from esxmon.errors import DiscoveryError, ForwardingError, StreamError
from esxmon.events.base import BatchCallback, ClassifiedEvent, EventCategory, EventSink
from esxmon.session import Session

logger = logging.getLogger(__name__)

# vSphere event types mapped to our categories
VM_EVENT_CATEGORY_MAP = {
    "VmBeingCreatedEvent": EventCategory.BEING_CREATED,
    "VmCreatedEvent": EventCategory.CREATED,
    "VmRemovedEvent": EventCategory.REMOVED,
    "VmStartingEvent": EventCategory.STARTING,
    "VmPoweredOnEvent": EventCategory.POWERED_ON,
    "VmSuspendingEvent": EventCategory.SUSPENDING,
    "VmSuspendedEvent": EventCategory.SUSPENDED,
    "VmResumingEvent": EventCategory.RESUMING,
    "VmStoppingEvent": EventCategory.STOPPING,
    "VmPoweredOffEvent": EventCategory.POWERED_OFF,
    "VmResettingEvent": EventCategory.RESETTING,
    "VmRegisteredEvent": EventCategory.REGISTERED,
    "VmReconfiguredEvent": EventCategory.RECONFIGURED,
}


class DispatcherState(str, Enum):
    """Lifecycle of one dispatcher."""

    IDLE = "idle"
    ROOT_RESOLVING = "root_resolving"
    ROOT_RESOLVED = "root_resolved"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    FAILED = "failed"


def event_type_name(raw_event: Any) -> str:
    """Return the kind tag of an event, e.g. "VmPoweredOnEvent".

    pyVmomi types carry their WSDL name; their Python type name is the dotted
    vmodl name ("vim.event.VmPoweredOnEvent").
    """
    event_type = type(raw_event)
    wsdl_name = getattr(event_type, "_wsdlName", None)
    if isinstance(wsdl_name, str) and wsdl_name:
        return wsdl_name
    return event_type.__name__.rsplit(".", 1)[-1]


def _moref_id(obj: Any) -> str | None:
    """Managed object id of a reference, e.g. "vm-100"."""
    mo_id = getattr(obj, "_moId", None)
    return mo_id if isinstance(mo_id, str) else None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def classify(raw_event: Any) -> ClassifiedEvent:
    """Map a raw vSphere event to a ClassifiedEvent.

    Total: every input yields a record. Kinds outside VM_EVENT_CATEGORY_MAP
    become UNRECOGNIZED with their type name preserved.
    """
    type_name = event_type_name(raw_event)
    category = VM_EVENT_CATEGORY_MAP.get(type_name, EventCategory.UNRECOGNIZED)

    vm_argument = getattr(raw_event, "vm", None)
    key = getattr(raw_event, "key", None)
    created_time = getattr(raw_event, "createdTime", None)

    return ClassifiedEvent(
        category=category,
        object_name=_str_or_none(getattr(vm_argument, "name", None)),
        object_ref=_moref_id(getattr(vm_argument, "vm", None)),
        unrecognized_type=None if category is not EventCategory.UNRECOGNIZED else type_name,
        event_key=key if isinstance(key, int) else None,
        created_time=created_time if isinstance(created_time, datetime) else None,
        user_name=_str_or_none(getattr(raw_event, "userName", None)),
        message=_str_or_none(getattr(raw_event, "fullFormattedMessage", None)),
    )


class VSphereEventDispatcher:
    """Subscribes to a vSphere event stream and forwards classified events.

    The dispatcher:
    1. Resolves the default datacenter once per session
    2. Creates an event history collector scoped to it
    3. Polls the collector from a worker thread
    4. Classifies each event and hands it to the sink
    5. Returns when the stop event is set

    There is no reconnection here. After FAILED the caller has to open a new
    session and run a new dispatcher from IDLE.
    """

    def __init__(
        self,
        sink: EventSink,
        page_size: int = 10,
        include_full_detail: bool = True,
        tail_only: bool = True,
        poll_interval: float = 1.0,
        event_types: Sequence[str] | None = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.sink = sink
        self.page_size = page_size
        self.include_full_detail = include_full_detail
        self.tail_only = tail_only
        self.poll_interval = poll_interval
        self.event_types = list(event_types or [])
        self._state = DispatcherState.IDLE
        self._root: vim.Datacenter | None = None
        self._root_session: Session | None = None
        self._collector: vim.event.EventHistoryCollector | None = None
        self.events_received = 0
        self.events_forwarded = 0

    @property
    def state(self) -> DispatcherState:
        return self._state

    def resolve_root(self, session: Session) -> vim.Datacenter:
        """Find the single datacenter that scopes the subscription.

        Blocking; resolved once per session and cached.

        Raises:
            DiscoveryError: If there is no datacenter, more than one, or the
                inventory cannot be listed
        """
        if self._root is not None and self._root_session is session:
            return self._root

        self._state = DispatcherState.ROOT_RESOLVING
        logger.debug("Getting default datacenter for the host")
        content = session.content
        try:
            view = content.viewManager.CreateContainerView(
                content.rootFolder, [vim.Datacenter], True
            )
            try:
                datacenters = list(view.view)
            finally:
                view.Destroy()
        except Exception as e:
            self._state = DispatcherState.FAILED
            raise DiscoveryError(f"Unable to list datacenters: {e}") from e

        if not datacenters:
            self._state = DispatcherState.FAILED
            raise DiscoveryError("No default datacenter found")
        if len(datacenters) > 1:
            self._state = DispatcherState.FAILED
            names = ", ".join(str(_moref_id(dc)) for dc in datacenters)
            raise DiscoveryError(
                f"Default datacenter resolves to multiple instances ({names}), please specify"
            )

        self._root = datacenters[0]
        self._root_session = session
        self._state = DispatcherState.ROOT_RESOLVED
        logger.debug(f"Default datacenter: {_moref_id(self._root)}")
        return self._root

    def _build_filter(
        self,
        session: Session,
        root: vim.Datacenter,
        include_full_detail: bool,
        tail_only: bool,
    ) -> vim.event.EventFilterSpec:
        filter_spec = vim.event.EventFilterSpec(
            entity=vim.event.EventFilterSpec.ByEntity(
                entity=root,
                recursion=vim.event.EventFilterSpec.RecursionOption.all,
            ),
            disableFullMessage=not include_full_detail,
        )
        if self.event_types:
            filter_spec.eventTypeId = list(self.event_types)
        if tail_only:
            # Anchor on the server clock so no backlog is replayed
            filter_spec.time = vim.event.EventFilterSpec.ByTime(
                beginTime=session.current_time()
            )
        return filter_spec

    def _create_collector(
        self,
        session: Session,
        root: vim.Datacenter,
        page_size: int,
        include_full_detail: bool,
        tail_only: bool,
    ) -> vim.event.EventHistoryCollector:
        filter_spec = self._build_filter(session, root, include_full_detail, tail_only)
        collector = session.content.eventManager.CreateCollectorForEvents(filter_spec)
        collector.SetCollectorLatestPageSize(page_size)
        # Position just before the latest page: replay is bounded by page_size
        collector.ResetCollector()
        return collector

    def _destroy_collector(self, collector: vim.event.EventHistoryCollector) -> None:
        try:
            collector.DestroyCollector()
        except Exception as e:
            logger.debug(f"Error destroying event collector: {e}")

    async def subscribe(
        self,
        session: Session,
        root: vim.Datacenter,
        stop_event: asyncio.Event,
        on_batch: BatchCallback | None = None,
        page_size: int | None = None,
        include_full_detail: bool | None = None,
        tail_only: bool | None = None,
        on_started: Callable[[], Any] | None = None,
    ) -> None:
        """Stream events scoped to root until stop_event is set.

        Args:
            session: Live session
            root: Datacenter returned by resolve_root()
            stop_event: Cancellation token, observed between batches
            on_batch: Called as on_batch(root, events) per non-empty batch;
                may be a coroutine function. Defaults to self.on_batch.
                Errors raised by it are logged and the stream continues
            page_size: Events per poll (defaults to the dispatcher setting)
            include_full_detail: Request full formatted messages
            tail_only: Only deliver events created after subscribing
            on_started: Called once the collector exists and streaming begins

        Raises:
            StreamError: If the collector cannot be created or a poll fails
            RuntimeError: If a subscription is already active
            ValueError: If page_size is below 1
        """
        if self._collector is not None:
            raise RuntimeError("An event subscription is already active")

        callback = on_batch or self.on_batch
        if page_size is None:
            page_size = self.page_size
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if include_full_detail is None:
            include_full_detail = self.include_full_detail
        if tail_only is None:
            tail_only = self.tail_only

        self._state = DispatcherState.SUBSCRIBING
        logger.debug("Setting up the event collector")
        create = asyncio.ensure_future(asyncio.to_thread(
            self._create_collector, session, root, page_size, include_full_detail, tail_only
        ))
        try:
            collector = await asyncio.shield(create)
        except asyncio.CancelledError:
            self._state = DispatcherState.CANCELLED
            logger.info("Event subscription cancelled")
            # The worker thread keeps going; destroy what it creates
            await self._discard_pending_collector(create)
            raise
        except Exception as e:
            self._state = DispatcherState.FAILED
            raise StreamError(f"Unable to create event collector: {e}") from e

        self._collector = collector
        self._state = DispatcherState.STREAMING
        logger.info("Successfully subscribed to the event stream")

        try:
            if on_started is not None:
                on_started()

            while not stop_event.is_set():
                try:
                    events = await asyncio.to_thread(collector.ReadNextEvents, page_size)
                except Exception as e:
                    raise StreamError(f"Error while reading events: {e}") from e

                if events:
                    batch = list(events)
                    self.events_received += len(batch)
                    try:
                        result = callback(root, batch)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        logger.error(f"Error in batch callback: {e}")
                    # A full page means more may be waiting
                    if len(batch) >= page_size:
                        continue

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

            self._state = DispatcherState.CANCELLED
            logger.info("Event subscription cancelled")
        except asyncio.CancelledError:
            self._state = DispatcherState.CANCELLED
            logger.info("Event subscription cancelled")
            raise
        except Exception:
            self._state = DispatcherState.FAILED
            raise
        finally:
            self._collector = None
            await asyncio.to_thread(self._destroy_collector, collector)

    async def _discard_pending_collector(self, create: asyncio.Future) -> None:
        try:
            collector = await create
        except Exception as e:
            logger.debug(f"Event collector creation failed after cancellation: {e}")
            return
        await asyncio.to_thread(self._destroy_collector, collector)

    def on_batch(self, ref: Any, raw_events: Sequence[Any]) -> int:
        """Classify and forward one batch, in order.

        A sink failure for one event is logged and skipped; it never stops
        the rest of the batch or the stream.

        Returns:
            Number of events forwarded successfully
        """
        forwarded = 0
        for raw_event in raw_events:
            classified = classify(raw_event)
            try:
                self.sink.record(classified)
            except Exception as e:
                error = ForwardingError(event_type_name(raw_event), e)
                logger.warning(error.message)
                continue
            forwarded += 1

        self.events_forwarded += forwarded
        return forwarded
