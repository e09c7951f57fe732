"""Shared pytest fixtures for listener tests."""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from pyVmomi import vim

from esxmon.session import EndpointDescriptor, Session


def vm_event(event_cls, vm_name: str = "web-01", vm_ref: str = "vm-100", key: int = 1):
    """Build a pyVmomi VM event carrying a VM argument."""
    return event_cls(
        key=key,
        vm=vim.event.VmEventArgument(name=vm_name, vm=vim.VirtualMachine(vm_ref)),
    )


def make_collector(batches: list[list]) -> MagicMock:
    """Event collector mock returning the given batches, then nothing."""
    remaining = list(batches)

    def read_next_events(max_count):
        if remaining:
            return remaining.pop(0)
        return []

    collector = MagicMock()
    collector.ReadNextEvents.side_effect = read_next_events
    return collector


def make_session(
    endpoint: EndpointDescriptor,
    datacenters: list | None = None,
    collector: MagicMock | None = None,
) -> Session:
    """Session around a mocked ServiceInstance."""
    service_instance = MagicMock()
    service_instance.CurrentTime.return_value = datetime(2024, 1, 1, tzinfo=timezone.utc)

    content = MagicMock()
    if datacenters is None:
        datacenters = [vim.Datacenter("datacenter-2")]
    content.viewManager.CreateContainerView.return_value.view = datacenters
    content.eventManager.CreateCollectorForEvents.return_value = collector or make_collector([])

    return Session(service_instance=service_instance, content=content, endpoint=endpoint)


@pytest.fixture
def endpoint() -> EndpointDescriptor:
    return EndpointDescriptor(
        scheme="https",
        host="esxi.example.com",
        port=443,
        username="root",
        password="secret",
    )


@pytest.fixture
def datacenter():
    return vim.Datacenter("datacenter-2")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep host config files and ESXMON_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("ESXMON_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("esxmon.config.DEFAULT_CONFIG_FILE", str(tmp_path / "absent.yml"))


@pytest.fixture(name="vm_event")
def vm_event_factory():
    return vm_event


@pytest.fixture(name="make_collector")
def make_collector_factory():
    return make_collector


@pytest.fixture(name="make_session")
def make_session_factory(endpoint):
    def factory(datacenters=None, collector=None):
        return make_session(endpoint, datacenters=datacenters, collector=collector)

    return factory


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The CLI installs its own root handler; put the previous ones back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
