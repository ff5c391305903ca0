import re

from pyVmomi import vim, vmodl
from managers.vcenter import VCenter, InventoryNotFound
from managers.host_manager import HostManager
from constants import (
    DATASTORE_NAME_FORBIDDEN_CHARS, DATASTORE_NAME_MAX_LENGTH, DEFAULT_VMFS_VERSION,
    DEVICE_NAME_PATTERN, GB, SUPPORTED_VMFS_VERSIONS
)


class DatastoreOperationError(Exception):
    """A datastore precondition was not met or the vSphere API rejected the operation."""


def validate_datastore_name(name):
    if not name or len(name) > DATASTORE_NAME_MAX_LENGTH:
        raise ValueError(f"Datastore name must be 1-{DATASTORE_NAME_MAX_LENGTH} characters, got '{name}'.")
    bad = [c for c in DATASTORE_NAME_FORBIDDEN_CHARS if c in name]
    if bad:
        raise ValueError(f"Datastore name '{name}' contains forbidden character(s): {' '.join(bad)}")


def validate_device_name(device_name):
    if not device_name or not re.match(DEVICE_NAME_PATTERN, device_name):
        raise ValueError(f"'{device_name}' is not a canonical device name (naa.*, eui.*, t10.*, mpx.*).")


class DatastoreManager(VCenter):

    def __init__(self, vcenter_instance):
        if not vcenter_instance.connection:
            raise ValueError("VCenter instance is not connected. Please establish a connection first.")
        self.vcenter = vcenter_instance
        self.connection = vcenter_instance.connection
        self.logger = vcenter_instance.logger
        self.host_manager = HostManager(vcenter_instance)

    def _find_datastore(self, host, datastore_name):
        for datastore in self.host_manager.list_datastores(host):
            if datastore.name == datastore_name:
                return datastore
        return None

    def _get_vmfs_datastore(self, host, datastore_name):
        datastore = self._find_datastore(host, datastore_name)
        if datastore is None:
            error_message = f"Datastore '{datastore_name}' not found on host '{host.name}'."
            self.logger.error(error_message)
            raise InventoryNotFound(error_message)
        if datastore.summary.type != 'VMFS':
            raise ValueError(f"Datastore '{datastore_name}' is {datastore.summary.type}, not VMFS.")
        return datastore

    def _api_error(self, action, fault):
        message = f"{action} failed: {self.extract_error_message(fault)}"
        self.logger.error(message)
        return DatastoreOperationError(message)

    def list_datastores(self, host_name):
        """Returns name, type, capacity and free space (GB) of every datastore on the host."""
        host = self.host_manager.get_host(host_name)
        datastores = []
        for ds in self.host_manager.list_datastores(host):
            datastores.append({
                "name": ds.name,
                "type": ds.summary.type,
                "capacity_gb": round(ds.summary.capacity / GB, 2),
                "free_gb": round(ds.summary.freeSpace / GB, 2),
                "accessible": bool(ds.summary.accessible),
            })
        return datastores

    def create_vmfs_datastore(self, host_name, datastore_name, device_name, size_gb=None,
                              vmfs_version=DEFAULT_VMFS_VERSION):
        """
        Creates a VMFS datastore on a device of the host.

        :param host_name: Host that sees the device.
        :param datastore_name: Name of the new datastore.
        :param device_name: Canonical name of the backing device, e.g. 'eui.0123...'.
        :param size_gb: Optional size in GB; the whole device is used when omitted.
        :param vmfs_version: VMFS major version, 5 or 6.
        :return: Name of the created datastore.
        """
        validate_datastore_name(datastore_name)
        validate_device_name(device_name)
        if vmfs_version not in SUPPORTED_VMFS_VERSIONS:
            raise ValueError(f"Unsupported VMFS version {vmfs_version}; use one of {SUPPORTED_VMFS_VERSIONS}.")
        if size_gb is not None and (isinstance(size_gb, bool) or not isinstance(size_gb, int) or size_gb <= 0):
            raise ValueError(f"Size must be a positive whole number of GB, got {size_gb!r}.")

        host = self.host_manager.get_host(host_name)
        if self._find_datastore(host, datastore_name) is not None:
            raise DatastoreOperationError(f"Datastore '{datastore_name}' already exists on host '{host_name}'.")

        datastore_system = host.configManager.datastoreSystem
        disk = next((d for d in datastore_system.QueryAvailableDisksForVmfs() or []
                     if d.canonicalName == device_name), None)
        if disk is None:
            raise DatastoreOperationError(f"Device '{device_name}' is not available for VMFS on host '{host_name}'.")

        block_size = disk.capacity.blockSize
        device_bytes = disk.capacity.block * block_size
        if size_gb is not None and size_gb * GB > device_bytes:
            raise ValueError(f"Requested {size_gb} GB exceeds device '{device_name}' capacity "
                             f"of {device_bytes / GB:.2f} GB.")

        try:
            options = datastore_system.QueryVmfsDatastoreCreateOptions(devicePath=disk.devicePath,
                                                                       vmfsMajorVersion=vmfs_version)
            if not options:
                raise DatastoreOperationError(f"No VMFS create options for device '{device_name}'.")
            spec = options[0].spec
            spec.vmfs.volumeName = datastore_name
            if size_gb is not None:
                partition = spec.partition.partition[0]
                partition.endSector = partition.startSector + (size_gb * GB) // block_size - 1
            datastore = datastore_system.CreateVmfsDatastore(spec=spec)
        except vmodl.MethodFault as fault:
            raise self._api_error(f"Creating datastore '{datastore_name}' on '{device_name}'", fault)

        self.logger.info(f"Datastore '{datastore.name}' created on '{device_name}' (host '{host_name}').")
        return datastore.name

    def expand_vmfs_datastore(self, host_name, datastore_name):
        """Grows a VMFS datastore into the free space of its device."""
        host = self.host_manager.get_host(host_name)
        datastore = self._get_vmfs_datastore(host, datastore_name)
        datastore_system = host.configManager.datastoreSystem
        try:
            options = datastore_system.QueryVmfsDatastoreExpandOptions(datastore=datastore)
            if not options:
                raise DatastoreOperationError(f"Datastore '{datastore_name}' has no free space to expand into.")
            datastore = datastore_system.ExpandVmfsDatastore(datastore=datastore, spec=options[0].spec)
        except vmodl.MethodFault as fault:
            raise self._api_error(f"Expanding datastore '{datastore_name}'", fault)
        capacity_gb = datastore.summary.capacity / GB
        self.logger.info(f"Datastore '{datastore_name}' expanded to {capacity_gb:.2f} GB.")
        return capacity_gb

    def unmount_vmfs_datastore(self, host_name, datastore_name):
        """Unmounts a VMFS datastore from one host. Refuses when VMs are still registered on it."""
        host = self.host_manager.get_host(host_name)
        datastore = self._get_vmfs_datastore(host, datastore_name)

        mount = next((m for m in datastore.host or [] if m.key == host), None)
        if mount is not None and not mount.mountInfo.mounted:
            raise DatastoreOperationError(f"Datastore '{datastore_name}' is not mounted on host '{host_name}'.")
        if datastore.vm:
            names = ", ".join(vm.name for vm in datastore.vm)
            raise DatastoreOperationError(f"Datastore '{datastore_name}' still holds VMs: {names}.")

        try:
            host.configManager.storageSystem.UnmountVmfsVolume(vmfsUuid=datastore.info.vmfs.uuid)
        except vmodl.MethodFault as fault:
            raise self._api_error(f"Unmounting datastore '{datastore_name}'", fault)
        self.logger.info(f"Datastore '{datastore_name}' unmounted from host '{host_name}'.")
        return True

    def resignature_vmfs_volume(self, host_name, device_name):
        """
        Assigns a new signature to an unresolved (snapshot or replica) VMFS volume on a device
        and mounts it. Returns the name of the resulting datastore.
        """
        validate_device_name(device_name)
        host = self.host_manager.get_host(host_name)
        self.host_manager.rescan_storage(host)

        datastore_system = host.configManager.datastoreSystem
        volume = None
        for candidate in datastore_system.QueryUnresolvedVmfsVolumes() or []:
            if any(extent.device.diskName == device_name for extent in candidate.extent):
                volume = candidate
                break
        if volume is None:
            raise InventoryNotFound(f"No unresolved VMFS volume on device '{device_name}' (host '{host_name}').")
        if not volume.resolveStatus.resolvable:
            raise DatastoreOperationError(f"VMFS volume '{volume.vmfsLabel}' on '{device_name}' cannot be "
                                          "resignatured: extents are missing.")

        spec = vim.host.UnresolvedVmfsResignatureSpec()
        spec.extentDevicePath = [extent.devicePath for extent in volume.extent]
        try:
            task = datastore_system.ResignatureUnresolvedVmfsVolume_Task(resolutionSpec=spec)
        except vmodl.MethodFault as fault:
            raise self._api_error(f"Resignaturing volume '{volume.vmfsLabel}'", fault)
        if not self.wait_for_task(task):
            raise DatastoreOperationError(f"Resignature task for volume '{volume.vmfsLabel}' failed.")

        new_name = task.info.result.result.name
        self.logger.info(f"Volume '{volume.vmfsLabel}' on '{device_name}' resignatured as '{new_name}'.")
        return new_name
