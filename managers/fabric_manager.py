import ipaddress
from dataclasses import dataclass
from typing import Callable, List, Optional

from managers.vcenter import VCenter
from managers.host_manager import HostManager
from managers.esxcli import EsxCliSession
from managers.reports import HostOutcome, HostReport, OperationResult
from constants import (
    DEFAULT_ADMIN_QUEUE_SIZE, DEFAULT_CONTROLLER_ID, DEFAULT_IO_QUEUE_NUMBER,
    DEFAULT_IO_QUEUE_SIZE, DEFAULT_KEEP_ALIVE_TIMEOUT, DEFAULT_PORT_NUMBER,
    NQN_PREFIX, NVME_DEVICE_PREFIX, NVME_TCP_DRIVER
)


@dataclass(frozen=True)
class FabricTuning:
    """
    Tuning parameters for an NVMe/TCP fabric connect.

    Attributes:
        admin_queue_size (int): Admin queue depth. Default 32.
        controller_id (int): Controller id to request, 65535 lets the target pick. Default 65535.
        io_queue_number (int): Number of I/O queues. Default 8.
        io_queue_size (int): Depth of each I/O queue. Default 256.
        keep_alive_timeout (int): Keep-alive timeout in seconds. Default 256.
        port_number (int): Target TCP port. Default 4420.
    """
    admin_queue_size: int = DEFAULT_ADMIN_QUEUE_SIZE
    controller_id: int = DEFAULT_CONTROLLER_ID
    io_queue_number: int = DEFAULT_IO_QUEUE_NUMBER
    io_queue_size: int = DEFAULT_IO_QUEUE_SIZE
    keep_alive_timeout: int = DEFAULT_KEEP_ALIVE_TIMEOUT
    port_number: int = DEFAULT_PORT_NUMBER

    def __post_init__(self):
        for name in ("admin_queue_size", "controller_id", "io_queue_number",
                     "io_queue_size", "keep_alive_timeout", "port_number"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}.")
        if self.port_number > 65535:
            raise ValueError(f"port_number must be at most 65535, got {self.port_number}.")
        if self.controller_id > 65535:
            raise ValueError(f"controller_id must be at most 65535, got {self.controller_id}.")


def validate_target(address: Optional[str], subsystem_nqn: str):
    """Raises ValueError for a malformed target address or NQN. address may be None."""
    if address is not None:
        try:
            ipaddress.ip_address(address)
        except ValueError:
            raise ValueError(f"Target address '{address}' is not a valid IP address.")
    if not subsystem_nqn or not subsystem_nqn.startswith(NQN_PREFIX):
        raise ValueError(f"Subsystem NQN '{subsystem_nqn}' must start with '{NQN_PREFIX}'.")


def open_esxcli_session(host):
    return EsxCliSession.from_env(host.name).open()


class FabricManager(VCenter):
    """Connects and disconnects every eligible host of a cluster to an NVMe/TCP target."""

    def __init__(self, vcenter_instance, open_session: Optional[Callable] = None):
        if not vcenter_instance.connection:
            raise ValueError("VCenter instance is not connected.")
        self.vcenter = vcenter_instance
        self.connection = vcenter_instance.connection
        self.logger = vcenter_instance.logger
        self.host_manager = HostManager(vcenter_instance)
        self.open_session = open_session or open_esxcli_session

    def _eligible_hosts(self, cluster_name):
        """
        Resolves the cluster (InventoryNotFound aborts the run) and yields
        (host, skip_report) pairs; skip_report is set for hosts that are not connected.
        """
        cluster = self.host_manager.get_cluster(cluster_name)
        hosts = self.host_manager.list_hosts(cluster)
        self.logger.info(f"Cluster '{cluster_name}' has {len(hosts)} host(s).")
        for host in hosts:
            try:
                connected = self.host_manager.is_host_connected(host)
            except Exception as e:
                message = f"Could not read connection state: {e}. Skipping."
                self.logger.error(f"[{host.name}] {message}")
                yield host, HostReport.skipped(host.name, HostOutcome.SKIPPED_INVENTORY_FAILED, message)
                continue
            if not connected:
                state = getattr(host.runtime, 'connectionState', 'unknown')
                message = f"Host is {state}, not connected. Skipping."
                self.logger.warning(f"[{host.name}] {message}")
                yield host, HostReport.skipped(host.name, HostOutcome.SKIPPED_NOT_CONNECTED, message)
            else:
                yield host, None

    def _open(self, host):
        """Returns (session, None) or (None, skip_report) when the session cannot be opened."""
        try:
            return self.open_session(host), None
        except Exception as e:
            message = f"Could not open management session: {e}"
            self.logger.error(f"[{host.name}] {message}")
            return None, HostReport.skipped(host.name, HostOutcome.SKIPPED_SESSION_FAILED, message)

    def _close(self, host, session):
        try:
            session.close()
        except Exception as e:
            self.logger.warning(f"[{host.name}] Closing management session failed: {e}")

    def _rescan(self, host, session):
        try:
            if session.rescan_storage():
                self.logger.info(f"[{host.name}] Storage rescan completed.")
                return True
            self.logger.error(f"[{host.name}] Storage rescan reported failure.")
        except Exception as e:
            self.logger.error(f"[{host.name}] Storage rescan failed: {e}")
        return False

    def connect_cluster(self, cluster_name, address, subsystem_nqn, tuning: FabricTuning = FabricTuning()) -> List[HostReport]:
        """
        Connects every NVMe/TCP adapter of every connected host in the cluster to the target.

        Hosts that are not connected, or whose session cannot be opened, are skipped.
        A failing adapter never stops the remaining adapters or hosts. Every host that
        was reached is rescanned once, whatever its adapter outcomes.

        :param cluster_name: Name of the cluster to reconcile.
        :param address: IP address of the NVMe/TCP target portal.
        :param subsystem_nqn: NQN of the target subsystem.
        :param tuning: FabricTuning with the connect parameters.
        :return: One HostReport per host, in cluster order.
        """
        validate_target(address, subsystem_nqn)
        reports = []
        for host, skip_report in self._eligible_hosts(cluster_name):
            if skip_report:
                reports.append(skip_report)
                continue

            session, skip_report = self._open(host)
            if skip_report:
                reports.append(skip_report)
                continue

            try:
                operations = []
                try:
                    adapters = self.host_manager.list_adapters(host, driver=NVME_TCP_DRIVER)
                except Exception as e:
                    self.logger.error(f"[{host.name}] Could not list storage adapters: {e}")
                    adapters = []
                    operations.append(OperationResult("adapter list", False, str(e)))
                else:
                    if not adapters:
                        self.logger.warning(f"[{host.name}] No {NVME_TCP_DRIVER} adapters found.")
                for adapter in adapters:
                    operations.append(self._connect_adapter(host, session, adapter.device, address, subsystem_nqn, tuning))
                rescanned = self._rescan(host, session)
            finally:
                self._close(host, session)
            reports.append(HostReport.from_operations(host.name, operations, rescanned))
        return reports

    def _connect_adapter(self, host, session, adapter_name, address, subsystem_nqn, tuning):
        target = f"{adapter_name} -> {address}:{tuning.port_number}"
        try:
            if session.connect_fabric(adapter_name, address, subsystem_nqn, tuning):
                self.logger.info(f"[{host.name}] Connected {target} ({subsystem_nqn}).")
                return OperationResult(adapter_name, True, f"connected to {address}:{tuning.port_number}")
            self.logger.error(f"[{host.name}] Connect {target} failed.")
            return OperationResult(adapter_name, False, "connect returned failure")
        except Exception as e:
            self.logger.error(f"[{host.name}] Connect {target} raised: {e}")
            return OperationResult(adapter_name, False, str(e))

    def disconnect_cluster(self, cluster_name, subsystem_nqn, device_prefix=NVME_DEVICE_PREFIX) -> List[HostReport]:
        """
        Disconnects NVMe controllers on every connected host in the cluster.

        A host that still has VMFS datastores on devices starting with device_prefix is
        skipped entirely. Otherwise every controller the host lists is disconnected
        against subsystem_nqn; the controller list is not filtered by target.
        """
        validate_target(None, subsystem_nqn)
        reports = []
        for host, skip_report in self._eligible_hosts(cluster_name):
            if skip_report:
                reports.append(skip_report)
                continue

            try:
                in_use = self.host_manager.fabric_backed_datastores(host, device_prefix)
            except Exception as e:
                message = f"Could not read datastores: {e}. Skipping."
                self.logger.error(f"[{host.name}] {message}")
                reports.append(HostReport.skipped(host.name, HostOutcome.SKIPPED_INVENTORY_FAILED, message))
                continue
            if in_use:
                message = f"Datastore(s) on {device_prefix}* devices still present: {', '.join(in_use)}. Skipping."
                self.logger.warning(f"[{host.name}] {message}")
                reports.append(HostReport.skipped(host.name, HostOutcome.SKIPPED_IN_USE, message))
                continue

            session, skip_report = self._open(host)
            if skip_report:
                reports.append(skip_report)
                continue

            try:
                operations = []
                try:
                    controllers = session.list_controllers()
                except Exception as e:
                    self.logger.error(f"[{host.name}] Could not list NVMe controllers: {e}")
                    controllers = []
                    operations.append(OperationResult("controller list", False, str(e)))
                for controller in controllers:
                    operations.append(self._disconnect_controller(host, session, controller, subsystem_nqn))
                rescanned = self._rescan(host, session)
            finally:
                self._close(host, session)
            reports.append(HostReport.from_operations(host.name, operations, rescanned))
        return reports

    def _disconnect_controller(self, host, session, controller, subsystem_nqn):
        target = f"{controller.adapter}#{controller.controller_number}"
        try:
            if session.disconnect_fabric(controller.adapter, controller.controller_number, subsystem_nqn):
                self.logger.info(f"[{host.name}] Disconnected controller {target}.")
                return OperationResult(target, True, "disconnected")
            self.logger.error(f"[{host.name}] Disconnect of controller {target} failed.")
            return OperationResult(target, False, "disconnect returned failure")
        except Exception as e:
            self.logger.error(f"[{host.name}] Disconnect of controller {target} raised: {e}")
            return OperationResult(target, False, str(e))
