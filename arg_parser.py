# In arg_parser.py

import argparse
import argcomplete
from commands import (
    connect_environment, disconnect_environment, datastore_environment,
    adapter_environment, network_environment
)
from constants import (
    DEFAULT_ADMIN_QUEUE_SIZE, DEFAULT_CONTROLLER_ID, DEFAULT_IO_QUEUE_NUMBER,
    DEFAULT_IO_QUEUE_SIZE, DEFAULT_KEEP_ALIVE_TIMEOUT, DEFAULT_PORT_NUMBER,
    DEFAULT_MTU, DEFAULT_VMFS_VERSION, NVME_DEVICE_PREFIX
)


def create_parser():
    """
    Creates and configures the argparse object for the fabricbuild tool.
    """
    parser = argparse.ArgumentParser(prog='fabricbuild', description="NVMe/TCP fabric and datastore management for vSphere")

    parser.add_argument('--verbose', action='store_true', help='Enable debug logging.')
    parser.add_argument('--vcenter', help='vCenter address (defaults to VC_HOST).')

    subparsers = parser.add_subparsers(dest='command', title='commands',
                                       help='Action command (connect, disconnect, datastore, adapter, network)')

    # --- Common Arguments for Subparsers ---
    cluster_parser = argparse.ArgumentParser(add_help=False)
    cluster_parser.add_argument('-C', '--cluster', required=True, help='Cluster name.')

    nqn_parser = argparse.ArgumentParser(add_help=False)
    nqn_parser.add_argument('-n', '--nqn', required=True, help='NVMe subsystem NQN of the target.')

    yes_parser = argparse.ArgumentParser(add_help=False)
    yes_parser.add_argument('-y', '--yes', action='store_true',
                            help='Automatically answer yes to all confirmation prompts (non-interactive mode).')

    # --- Connect Subparser ---
    connect_parser = subparsers.add_parser('connect', help='Connect every NVMe/TCP adapter of a cluster to a target.',
                                           parents=[cluster_parser, nqn_parser])
    connect_parser.add_argument('-a', '--address', required=True, help='Target portal IP address.')
    tuning = connect_parser.add_argument_group('tuning')
    tuning.add_argument('--admin-queue-size', type=int, help=f'Admin queue size (default {DEFAULT_ADMIN_QUEUE_SIZE}).')
    tuning.add_argument('--controller-id', type=int, help=f'Controller id (default {DEFAULT_CONTROLLER_ID}).')
    tuning.add_argument('--io-queue-number', type=int, help=f'Number of I/O queues (default {DEFAULT_IO_QUEUE_NUMBER}).')
    tuning.add_argument('--io-queue-size', type=int, help=f'I/O queue size (default {DEFAULT_IO_QUEUE_SIZE}).')
    tuning.add_argument('--keep-alive-timeout', type=int, help=f'Keep-alive timeout (default {DEFAULT_KEEP_ALIVE_TIMEOUT}).')
    tuning.add_argument('--port-number', type=int, help=f'Target port (default {DEFAULT_PORT_NUMBER}).')
    connect_parser.set_defaults(func=connect_environment)

    # --- Disconnect Subparser ---
    disconnect_parser = subparsers.add_parser('disconnect', help='Disconnect NVMe controllers on every host of a cluster.',
                                              parents=[cluster_parser, nqn_parser, yes_parser])
    disconnect_parser.add_argument('--device-prefix', default=NVME_DEVICE_PREFIX,
                                   help='Skip hosts with datastores on devices with this prefix.')
    disconnect_parser.set_defaults(func=disconnect_environment)

    # --- Datastore Subparser ---
    datastore_parser = subparsers.add_parser('datastore', help='VMFS datastore lifecycle on a host.',
                                             parents=[yes_parser])
    datastore_parser.add_argument('action', choices=['list', 'create', 'expand', 'unmount', 'resignature'])
    datastore_parser.add_argument('--host', required=True, help='ESXi host name.')
    datastore_parser.add_argument('--name', help='Datastore name (create, expand, unmount).')
    datastore_parser.add_argument('--device', help='Canonical device name, e.g. eui.xxxx (create, resignature).')
    datastore_parser.add_argument('--size-gb', type=int, help='Datastore size in GB (create, default whole device).')
    datastore_parser.add_argument('--vmfs-version', type=int, default=DEFAULT_VMFS_VERSION, choices=[5, 6])
    datastore_parser.set_defaults(func=datastore_environment)

    # --- Adapter Subparser ---
    adapter_parser = subparsers.add_parser('adapter', help='List or enable NVMe/TCP storage adapters.')
    adapter_parser.add_argument('action', choices=['list', 'enable'])
    adapter_parser.add_argument('-C', '--cluster', help='Cluster name (list).')
    adapter_parser.add_argument('--host', help='ESXi host name (enable).')
    adapter_parser.add_argument('--nic', help='Physical NIC to bind, e.g. vmnic2 (enable).')
    adapter_parser.set_defaults(func=adapter_environment)

    # --- Network Subparser ---
    network_parser = subparsers.add_parser('network', help='Create an NVMe/TCP VMkernel network on a host.')
    network_parser.add_argument('--host', required=True, help='ESXi host name.')
    network_parser.add_argument('--vswitch', required=True, help='Standard vSwitch name (created if missing).')
    network_parser.add_argument('--portgroup', required=True, help='Port group name (created if missing).')
    network_parser.add_argument('--ip', required=True, help='VMkernel IP address.')
    network_parser.add_argument('--netmask', required=True, help='VMkernel subnet mask.')
    network_parser.add_argument('--vlan', type=int, default=0, help='VLAN id (default 0).')
    network_parser.add_argument('--mtu', type=int, default=DEFAULT_MTU, help=f'MTU (default {DEFAULT_MTU}).')
    network_parser.add_argument('--nic', help='Comma-separated uplink vmnics for a new vSwitch.')
    network_parser.set_defaults(func=network_environment)

    argcomplete.autocomplete(parser)
    return parser


def validate_args(parser, args):
    """Checks the per-action argument combinations argparse cannot express."""
    if args.command == 'datastore':
        needs = {'create': ('name', 'device'), 'expand': ('name',), 'unmount': ('name',),
                 'resignature': ('device',), 'list': ()}
        missing = [f"--{opt}" for opt in needs[args.action] if not getattr(args, opt)]
        if missing:
            parser.error(f"datastore {args.action} requires {', '.join(missing)}.")
    elif args.command == 'adapter':
        if args.action == 'list' and not args.cluster:
            parser.error("adapter list requires --cluster.")
        if args.action == 'enable' and not (args.host and args.nic):
            parser.error("adapter enable requires --host and --nic.")
