from pyVmomi import vim
from managers.vcenter import VCenter, InventoryNotFound
from constants import HOST_CONNECTED_STATE, NVME_DEVICE_PREFIX


class HostManager(VCenter):
    """Inventory lookups for clusters, hosts, storage adapters and datastores."""

    def __init__(self, vcenter_instance):
        if not vcenter_instance.connection:
            raise ValueError("VCenter instance is not connected.")
        self.vcenter = vcenter_instance
        self.connection = vcenter_instance.connection
        self.logger = vcenter_instance.logger

    def get_cluster(self, cluster_name):
        cluster = self.get_obj([vim.ClusterComputeResource], cluster_name)
        if not cluster:
            error_message = f"Cluster {cluster_name} not found."
            self.logger.error(error_message)
            raise InventoryNotFound(error_message)
        return cluster

    def get_host(self, host_name):
        host = self.get_obj([vim.HostSystem], host_name)
        if not host:
            error_message = f"Host {host_name} not found."
            self.logger.error(error_message)
            raise InventoryNotFound(error_message)
        return host

    def list_hosts(self, cluster):
        """Hosts of a cluster, in the order vCenter returns them."""
        return list(cluster.host or [])

    def is_host_connected(self, host):
        runtime = getattr(host, 'runtime', None)
        return runtime is not None and str(runtime.connectionState) == HOST_CONNECTED_STATE

    def list_adapters(self, host, driver=None):
        """
        Lists the storage adapters (HBAs) of a host.

        :param host: vim.HostSystem
        :param driver: Optional driver tag; only adapters using this driver are returned.
        :return: list of vim.host.HostBusAdapter
        """
        storage_device = host.config.storageDevice if host.config else None
        adapters = list(storage_device.hostBusAdapter or []) if storage_device else []
        if driver is None:
            return adapters
        return [hba for hba in adapters if hba.driver == driver]

    def list_datastores(self, host):
        return list(host.datastore or [])

    def fabric_backed_datastores(self, host, device_prefix=NVME_DEVICE_PREFIX):
        """
        Returns names of VMFS datastores on the host that have at least one extent
        on a device whose canonical name starts with device_prefix.
        """
        in_use = []
        for datastore in self.list_datastores(host):
            if datastore.summary.type != 'VMFS':
                continue
            vmfs = getattr(datastore.info, 'vmfs', None)
            extents = vmfs.extent if vmfs else []
            if any(extent.diskName.startswith(device_prefix) for extent in extents or []):
                in_use.append(datastore.name)
        return in_use

    def rescan_storage(self, host):
        """Rescans all HBAs and then VMFS volumes on the host."""
        storage_system = host.configManager.storageSystem
        self.logger.debug(f"Rescanning HBAs on {host.name}.")
        storage_system.RescanAllHba()
        storage_system.RescanVmfs()
        self.logger.info(f"Storage rescan completed on {host.name}.")
