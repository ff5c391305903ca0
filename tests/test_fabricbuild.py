#!/usr/bin/env python3
# test_fabricbuild.py - entry point exit codes

from unittest.mock import MagicMock, patch

import pytest

import fabricbuild
from managers.vcenter import InventoryNotFound

CONNECT_ARGV = ["connect", "-C", "nvme-cluster", "-a", "192.0.2.10", "-n", "nqn.x"]


@pytest.fixture(autouse=True)
def no_sinks(monkeypatch):
    monkeypatch.delenv("MONGO_HOST", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)


@pytest.fixture
def vcenter_factory():
    with patch("fabricbuild.get_vcenter_instance", return_value=MagicMock()) as factory:
        yield factory


def run_with(handler_result):
    handler = MagicMock()
    if isinstance(handler_result, Exception):
        handler.side_effect = handler_result
    else:
        handler.return_value = handler_result
    with patch("arg_parser.connect_environment", handler):
        return fabricbuild.main(CONNECT_ARGV)


def test_all_hosts_succeeded(vcenter_factory):
    assert run_with([{"status": "success"}, {"status": "skipped"}]) == 0


def test_host_failure_exits_nonzero(vcenter_factory):
    assert run_with([{"status": "success"}, {"status": "failed"}]) == 1


def test_fatal_lookup_exits_nonzero(vcenter_factory):
    assert run_with(InventoryNotFound("Cluster nvme-cluster not found.")) == 1


def test_no_vcenter(vcenter_factory):
    vcenter_factory.return_value = None
    assert run_with([]) == 1


def test_vcenter_override_is_passed(vcenter_factory):
    with patch("arg_parser.connect_environment", MagicMock(return_value=[])):
        assert fabricbuild.main(["--vcenter", "vc02.example.lab"] + CONNECT_ARGV) == 0
    vcenter_factory.assert_called_once_with("vc02.example.lab")


def test_missing_command_exits():
    with pytest.raises(SystemExit):
        fabricbuild.main([])
