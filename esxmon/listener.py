"""ESXi event listener pipeline.

Wires the session manager and the event dispatcher together for one process:
open a session, resolve the default datacenter, stream events until the stop
event is set. With reconnect enabled the whole pipeline is re-run from
scratch after a connection or stream failure, with exponential backoff.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from esxmon.config import Settings
from esxmon.errors import EndpointConnectionError, StreamError
from esxmon.events.base import EventSink
from esxmon.events.sinks import LoggingEventSink
from esxmon.events.vsphere_events import DispatcherState, VSphereEventDispatcher
from esxmon.session import EndpointDescriptor, SessionManager

logger = logging.getLogger(__name__)


class ESXiEventListener:
    """Listens to the events of one vSphere endpoint.

    Only one session and one subscription exist at any time; a re-run
    closes the previous session before opening the next one.
    """

    def __init__(
        self,
        endpoint: EndpointDescriptor,
        sink: EventSink | None = None,
        page_size: int = 10,
        include_full_detail: bool = True,
        tail_only: bool = True,
        poll_interval: float = 1.0,
        event_types: list[str] | None = None,
        reconnect: bool = False,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        session_manager_factory: Callable[[EndpointDescriptor], SessionManager] = SessionManager,
    ):
        self.endpoint = endpoint
        self.sink = sink or LoggingEventSink()
        self.page_size = page_size
        self.include_full_detail = include_full_detail
        self.tail_only = tail_only
        self.poll_interval = poll_interval
        self.event_types = event_types or []
        self.reconnect = reconnect
        self._initial_reconnect_delay = reconnect_delay
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._session_manager_factory = session_manager_factory
        self._stop_event = asyncio.Event()
        self._running = False
        self.dispatcher: VSphereEventDispatcher | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        endpoint: EndpointDescriptor,
        sink: EventSink | None = None,
    ) -> ESXiEventListener:
        return cls(
            endpoint,
            sink=sink,
            page_size=settings.page_size,
            include_full_detail=settings.include_full_detail,
            tail_only=settings.tail_only,
            poll_interval=settings.poll_interval,
            event_types=settings.event_types,
            reconnect=settings.reconnect,
            reconnect_delay=settings.reconnect_delay,
            max_reconnect_delay=settings.max_reconnect_delay,
        )

    @property
    def state(self) -> DispatcherState:
        if self.dispatcher is None:
            return DispatcherState.IDLE
        return self.dispatcher.state

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run until stop_event (or stop()) fires.

        Returns normally on cancellation.

        Raises:
            EndpointConnectionError: Handshake failed (reconnect disabled)
            DiscoveryError: No unique default datacenter
            StreamError: Streaming failed (reconnect disabled)
        """
        if stop_event is not None:
            self._stop_event = stop_event
        self._running = True

        try:
            while not self._stop_event.is_set():
                try:
                    await self._run_once()
                    break
                except (EndpointConnectionError, StreamError) as e:
                    if not self.reconnect:
                        raise
                    logger.error(f"Event listener error: {e}")
                    logger.info(f"Reconnecting in {self._reconnect_delay}s...")
                    if await self._wait_for_stop(self._reconnect_delay):
                        break
                    self._reconnect_delay = min(
                        self._reconnect_delay * 2, self._max_reconnect_delay
                    )
        finally:
            self._running = False

        logger.info("Event listener stopped")

    async def _run_once(self) -> None:
        manager = self._session_manager_factory(self.endpoint)
        dispatcher = VSphereEventDispatcher(
            self.sink,
            page_size=self.page_size,
            include_full_detail=self.include_full_detail,
            tail_only=self.tail_only,
            poll_interval=self.poll_interval,
            event_types=self.event_types,
        )
        self.dispatcher = dispatcher

        try:
            logger.debug("Connecting to the ESXi host")
            session = await asyncio.to_thread(manager.open)
            if self._stop_event.is_set():
                return

            root = await asyncio.to_thread(dispatcher.resolve_root, session)
            await dispatcher.subscribe(
                session, root, self._stop_event, on_started=self._reset_reconnect_delay
            )
        finally:
            await asyncio.to_thread(manager.close)

    def _reset_reconnect_delay(self) -> None:
        # Backoff restarts only once events are actually streaming
        self._reconnect_delay = self._initial_reconnect_delay

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def stop(self) -> None:
        """Request the listener to stop; it returns after the current batch."""
        logger.info("Stopping event listener...")
        self._stop_event.set()

    def is_running(self) -> bool:
        """Check if the listener is currently running."""
        return self._running
