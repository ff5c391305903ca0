#!/usr/bin/env python3
# test_arg_parser.py - command line parsing

import pytest

from arg_parser import create_parser, validate_args
from commands import connect_environment, datastore_environment, disconnect_environment


@pytest.fixture
def parser():
    return create_parser()


def parse(parser, argv):
    args = parser.parse_args(argv)
    validate_args(parser, args)
    return args


def test_connect(parser):
    args = parse(parser, ["connect", "-C", "nvme-cluster", "-a", "192.0.2.10",
                          "-n", "nqn.2010-06.com.example:array1", "--io-queue-number", "4"])

    assert args.func is connect_environment
    assert args.cluster == "nvme-cluster"
    assert args.io_queue_number == 4
    assert args.admin_queue_size is None


def test_connect_requires_address(parser):
    with pytest.raises(SystemExit):
        parser.parse_args(["connect", "-C", "nvme-cluster", "-n", "nqn.x"])


def test_disconnect_defaults(parser):
    args = parse(parser, ["--verbose", "disconnect", "-C", "nvme-cluster", "-n", "nqn.x", "-y"])

    assert args.func is disconnect_environment
    assert args.verbose is True
    assert args.yes is True
    assert args.device_prefix == "eui."


def test_datastore_create(parser):
    args = parse(parser, ["datastore", "create", "--host", "esx-01", "--name", "nvme-ds01",
                          "--device", "eui.0001", "--size-gb", "100"])

    assert args.func is datastore_environment
    assert args.size_gb == 100
    assert args.vmfs_version == 6


@pytest.mark.parametrize("argv", [
    ["datastore", "create", "--host", "esx-01", "--name", "nvme-ds01"],
    ["datastore", "resignature", "--host", "esx-01"],
    ["adapter", "list"],
    ["adapter", "enable", "--host", "esx-01"],
])
def test_missing_action_arguments(parser, argv):
    with pytest.raises(SystemExit):
        parse(parser, argv)


def test_network(parser):
    args = parse(parser, ["network", "--host", "esx-01", "--vswitch", "vSwitch-nvme", "--portgroup", "nvme-a",
                          "--ip", "192.0.2.21", "--netmask", "255.255.255.0", "--mtu", "9000"])

    assert (args.vlan, args.mtu, args.nic) == (0, 9000, None)
