import logging
from typing import Any, Dict, List

from tabulate import tabulate

from constants import NVME_TCP_DRIVER, RED, ENDC
from managers.vcenter import VCenter
from managers.host_manager import HostManager
from managers.fabric_manager import FabricManager, FabricTuning, open_esxcli_session
from managers.datastore_manager import DatastoreManager
from managers.network_manager import NetworkManager
from managers.reports import format_reports

logger = logging.getLogger('fabricbuild.commands')

TUNING_ARGS = ("admin_queue_size", "controller_id", "io_queue_number",
               "io_queue_size", "keep_alive_timeout", "port_number")


def _tuning_from_args(args_dict: Dict[str, Any]) -> FabricTuning:
    """Builds FabricTuning from CLI args; options left unset keep their defaults."""
    overrides = {name: args_dict[name] for name in TUNING_ARGS if args_dict.get(name) is not None}
    return FabricTuning(**overrides)


def _confirm(prompt: str, args_dict: Dict[str, Any]) -> bool:
    if args_dict.get('yes'):
        return True
    answer = input(f"{prompt} [y/N]: ").strip().lower()
    return answer in ('y', 'yes')


def _print_reports(title: str, results: List[Dict[str, Any]]):
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80)
    print(format_reports(results) if results else "No hosts processed.")


def connect_environment(args_dict: Dict[str, Any], vcenter: VCenter) -> List[Dict[str, Any]]:
    """Connects every NVMe/TCP adapter in a cluster to the target subsystem."""
    tuning = _tuning_from_args(args_dict)
    logger.info(f"Connecting cluster '{args_dict['cluster']}' to {args_dict['address']}:{tuning.port_number} "
                f"({args_dict['nqn']}).")
    manager = FabricManager(vcenter)
    reports = manager.connect_cluster(args_dict['cluster'], args_dict['address'], args_dict['nqn'], tuning)
    results = [report.to_dict() for report in reports]
    _print_reports(f"NVMe/TCP CONNECT: {args_dict['cluster']}", results)
    return results


def disconnect_environment(args_dict: Dict[str, Any], vcenter: VCenter) -> List[Dict[str, Any]]:
    """Disconnects the NVMe controllers of every host in a cluster."""
    cluster = args_dict['cluster']
    if not _confirm(f"Disconnect ALL NVMe controllers on hosts of cluster '{cluster}'?", args_dict):
        logger.info("Disconnect cancelled by user.")
        return [{"status": "skipped", "message": "cancelled by user"}]
    manager = FabricManager(vcenter)
    reports = manager.disconnect_cluster(cluster, args_dict['nqn'], args_dict['device_prefix'])
    results = [report.to_dict() for report in reports]
    _print_reports(f"NVMe/TCP DISCONNECT: {cluster}", results)
    return results


def datastore_environment(args_dict: Dict[str, Any], vcenter: VCenter) -> List[Dict[str, Any]]:
    """Runs one datastore lifecycle action on a host."""
    manager = DatastoreManager(vcenter)
    action = args_dict['action']
    host = args_dict['host']
    result = {"host": host, "status": "success"}

    if action == 'list':
        datastores = manager.list_datastores(host)
        rows = [[d["name"], d["type"], d["capacity_gb"], d["free_gb"], "yes" if d["accessible"] else "no"]
                for d in datastores]
        print(tabulate(rows, headers=["Datastore", "Type", "Capacity (GB)", "Free (GB)", "Accessible"],
                       tablefmt="fancy_grid"))
        result["message"] = f"{len(datastores)} datastore(s)"
    elif action == 'create':
        name = manager.create_vmfs_datastore(host, args_dict['name'], args_dict['device'],
                                             size_gb=args_dict.get('size_gb'),
                                             vmfs_version=args_dict['vmfs_version'])
        result["message"] = f"created '{name}' on {args_dict['device']}"
    elif action == 'expand':
        capacity_gb = manager.expand_vmfs_datastore(host, args_dict['name'])
        result["message"] = f"'{args_dict['name']}' is now {capacity_gb:.2f} GB"
    elif action == 'unmount':
        if not _confirm(f"Unmount datastore '{args_dict['name']}' from {host}?", args_dict):
            return [{"host": host, "status": "skipped", "message": "cancelled by user"}]
        manager.unmount_vmfs_datastore(host, args_dict['name'])
        result["message"] = f"unmounted '{args_dict['name']}'"
    elif action == 'resignature':
        name = manager.resignature_vmfs_volume(host, args_dict['device'])
        result["message"] = f"volume on {args_dict['device']} mounted as '{name}'"
    else:
        raise ValueError(f"Unknown datastore action '{action}'.")

    print(f"{host}: {result['message']}")
    return [result]


def adapter_environment(args_dict: Dict[str, Any], vcenter: VCenter) -> List[Dict[str, Any]]:
    """Lists NVMe/TCP adapters of a cluster, or enables a software NVMe/TCP adapter on a host."""
    host_manager = HostManager(vcenter)

    if args_dict['action'] == 'enable':
        host = host_manager.get_host(args_dict['host'])
        session = open_esxcli_session(host)
        try:
            enabled = session.enable_fabric_adapter(args_dict['nic'])
            if enabled:
                session.rescan_storage()
        finally:
            session.close()
        status = "success" if enabled else "failed"
        message = f"NVMe/TCP adapter {'enabled' if enabled else 'NOT enabled'} on {args_dict['nic']}"
        print(f"{host.name}: {message}")
        return [{"host": host.name, "status": status, "message": message}]

    cluster = host_manager.get_cluster(args_dict['cluster'])
    rows, results = [], []
    for host in host_manager.list_hosts(cluster):
        if not host_manager.is_host_connected(host):
            rows.append([host.name, "-", "-", "-", f"{RED}{host.runtime.connectionState}{ENDC}"])
            results.append({"host": host.name, "status": "skipped", "message": "host not connected"})
            continue
        adapters = host_manager.list_adapters(host, driver=NVME_TCP_DRIVER)
        for hba in adapters:
            rows.append([host.name, hba.device, hba.driver, hba.model, hba.status])
        if not adapters:
            rows.append([host.name, "-", "-", "-", f"no {NVME_TCP_DRIVER} adapter"])
        results.append({"host": host.name, "status": "success", "message": f"{len(adapters)} adapter(s)"})
    print(tabulate(rows, headers=["Host", "Adapter", "Driver", "Model", "Status"], tablefmt="fancy_grid"))
    return results


def network_environment(args_dict: Dict[str, Any], vcenter: VCenter) -> List[Dict[str, Any]]:
    """Creates an NVMe/TCP VMkernel network on a host."""
    manager = NetworkManager(vcenter)
    nics = [n.strip() for n in args_dict['nic'].split(',')] if args_dict.get('nic') else None
    result = manager.configure_nvme_tcp_network(
        args_dict['host'], args_dict['vswitch'], args_dict['portgroup'],
        args_dict['ip'], args_dict['netmask'],
        vlan_id=args_dict['vlan'], mtu=args_dict['mtu'], nics=nics,
    )
    print(f"{result['host']}: {result['message']}")
    return [result]
