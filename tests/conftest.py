#!/usr/bin/env python3
# conftest.py - fabricbuild pytest configuration and fixtures
# Fakes for pyVmomi inventory objects and esxcli sessions

import logging
import os
import sys
from unittest.mock import MagicMock

import pytest

# Flat layout: make the top-level modules importable without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import NVME_TCP_DRIVER
from managers.esxcli import NvmeController


#==============================================================================
# BUILDERS - Fake inventory objects
#==============================================================================

def make_hba(device, driver=NVME_TCP_DRIVER, model="VMware NVMe over TCP Storage Adapter"):
    hba = MagicMock()
    hba.device = device
    hba.driver = driver
    hba.model = model
    hba.status = "online"
    return hba


def make_datastore(name, ds_type="VMFS", disks=(), vms=()):
    datastore = MagicMock()
    datastore.name = name
    datastore.summary.type = ds_type
    datastore.summary.capacity = 100 * 1024 ** 3
    datastore.summary.freeSpace = 40 * 1024 ** 3
    datastore.summary.accessible = True
    extents = []
    for disk in disks:
        extent = MagicMock()
        extent.diskName = disk
        extents.append(extent)
    datastore.info.vmfs.extent = extents
    datastore.info.vmfs.uuid = f"uuid-{name}"
    datastore.vm = list(vms)
    datastore.host = []
    return datastore


def make_host(name, state="connected", adapters=(), datastores=()):
    host = MagicMock()
    host.name = name
    host.runtime.connectionState = state
    host.config.storageDevice.hostBusAdapter = list(adapters)
    host.datastore = list(datastores)
    return host


def make_cluster(name, hosts):
    cluster = MagicMock()
    cluster.name = name
    cluster.host = list(hosts)
    return cluster


def make_session(connect_results=None, controllers=(), rescan=True):
    """
    A fake esxcli session. connect_results maps adapter name to a bool result or
    an exception to raise.
    """
    connect_results = connect_results or {}
    session = MagicMock()

    def connect_fabric(adapter, address, nqn, tuning):
        outcome = connect_results.get(adapter, True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    session.connect_fabric.side_effect = connect_fabric
    session.list_controllers.return_value = list(controllers)
    session.disconnect_fabric.return_value = True
    session.rescan_storage.return_value = rescan
    return session


def make_controller(adapter, number, name="nqn.2010-06.com.example:array1"):
    return NvmeController(name=f"{name}#{adapter}#192.0.2.10:4420", controller_number=number,
                          adapter=adapter, transport_type="TCP", online=True)


#==============================================================================
# FIXTURES
#==============================================================================

@pytest.fixture
def vcenter():
    """A connected VCenter stand-in."""
    vc = MagicMock()
    vc.connection = MagicMock()
    vc.logger = logging.getLogger('fabricbuild.test')
    return vc


@pytest.fixture
def session_registry():
    """
    Records which hosts had a session opened. Tests register sessions with
    registry['sessions'][host_name] = make_session(...); an Exception value makes
    the open fail.
    """
    registry = {"sessions": {}, "opened": []}

    def open_session(host):
        registry["opened"].append(host.name)
        session = registry["sessions"].get(host.name)
        if session is None:
            session = make_session()
            registry["sessions"][host.name] = session
        if isinstance(session, Exception):
            raise session
        return session

    registry["open_session"] = open_session
    return registry
