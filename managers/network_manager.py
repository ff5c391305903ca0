import ipaddress

from pyVmomi import vim, vmodl
from managers.vcenter import VCenter
from managers.host_manager import HostManager
from constants import DEFAULT_MTU, DEFAULT_VSWITCH_PORTS, NVME_TCP_NIC_TYPE


class NetworkManager(VCenter):

    def __init__(self, vcenter_instance):
        if not vcenter_instance.connection:
            raise ValueError("VCenter instance is not connected.")
        self.vcenter = vcenter_instance
        self.connection = vcenter_instance.connection
        self.logger = vcenter_instance.logger
        self.host_manager = HostManager(vcenter_instance)

    def create_vswitch(self, host_name, vswitch_name, num_ports=DEFAULT_VSWITCH_PORTS, mtu=DEFAULT_MTU, nics=None):
        """
        Creates a standard vSwitch on the host, optionally bonding physical NICs as uplinks.

        Returns True if the vSwitch is created successfully (or already exists), otherwise False.

        :param host_name: The name of the host where the vSwitch will be created.
        :param vswitch_name: The name for the new virtual switch.
        :param num_ports: The number of ports that the virtual switch will have.
        :param mtu: The MTU size for the virtual switch.
        :param nics: Optional list of vmnic names to use as uplinks.
        :return: bool
        """
        host = self.host_manager.get_host(host_name)
        network_system = host.configManager.networkSystem

        vswitch_spec = vim.host.VirtualSwitch.Specification()
        vswitch_spec.numPorts = num_ports
        vswitch_spec.mtu = mtu
        if nics:
            vswitch_spec.bridge = vim.host.VirtualSwitch.BondBridge(nicDevice=list(nics))

        try:
            network_system.AddVirtualSwitch(vswitchName=vswitch_name, spec=vswitch_spec)
            self.logger.info(f"Virtual switch '{vswitch_name}' created on host '{host_name}'.")
            return True
        except vim.fault.AlreadyExists:
            self.logger.warning(f"Virtual switch '{vswitch_name}' already exists on host '{host_name}'.")
            return True
        except vim.fault.ResourceInUse:
            self.logger.error(f"Failed to create virtual switch '{vswitch_name}' on host '{host_name}': "
                              "uplink or resource already in use.")
            return False
        except vmodl.MethodFault as e:
            self.logger.error(f"Failed to create virtual switch '{vswitch_name}' on host '{host_name}': "
                              f"{self.extract_error_message(e)}")
            return False

    def delete_vswitch(self, host_name, vswitch_name):
        """
        Deletes a vSwitch from a host.

        :param host_name: The name of the host from which to delete the vSwitch.
        :param vswitch_name: The name of the vSwitch to delete.
        """
        host = self.host_manager.get_host(host_name)
        network_system = host.configManager.networkSystem

        if not any(vswitch.name == vswitch_name for vswitch in network_system.networkInfo.vswitch):
            self.logger.error(f"vSwitch '{vswitch_name}' not found on host '{host_name}'.")
            return False

        try:
            network_system.RemoveVirtualSwitch(vswitchName=vswitch_name)
            self.logger.info(f"vSwitch '{vswitch_name}' deleted from host '{host_name}'.")
        except vim.fault.NotFound:
            self.logger.error(f"vSwitch '{vswitch_name}' could not be found.")
            return False
        except vim.fault.ResourceInUse:
            self.logger.error(f"vSwitch '{vswitch_name}' is in use and cannot be deleted.")
            return False
        except vmodl.MethodFault as e:
            self.logger.error(f"Error deleting vSwitch '{vswitch_name}': {self.extract_error_message(e)}")
            return False
        return True

    def create_port_group(self, host_name, vswitch_name, port_group_name, vlan_id=0):
        """
        Creates a port group on a standard vSwitch, skipping it if it already exists.

        :return: True if the port group exists afterwards, False otherwise.
        """
        if not 0 <= vlan_id <= 4095:
            raise ValueError(f"VLAN id must be between 0 and 4095, got {vlan_id}.")
        host = self.host_manager.get_host(host_name)
        network_system = host.configManager.networkSystem

        if any(pg.spec.name == port_group_name for pg in network_system.networkConfig.portgroup):
            self.logger.warning(f"Port group '{port_group_name}' already exists on host '{host_name}'. Skipping.")
            return True

        port_group_spec = vim.host.PortGroup.Specification()
        port_group_spec.name = port_group_name
        port_group_spec.vlanId = vlan_id
        port_group_spec.vswitchName = vswitch_name
        port_group_spec.policy = vim.host.NetworkPolicy()

        try:
            network_system.AddPortGroup(portgrp=port_group_spec)
            self.logger.info(f"Port group '{port_group_name}' created on switch '{vswitch_name}'.")
            return True
        except vim.fault.AlreadyExists:
            self.logger.warning(f"Port group '{port_group_name}' already exists.")
            return True
        except vim.fault.NotFound as e:
            self.logger.error(f"Error: {e.msg}. The vSwitch '{vswitch_name}' might not exist.")
            return False
        except vmodl.MethodFault as e:
            self.logger.error(f"Failed to create port group '{port_group_name}': {self.extract_error_message(e)}")
            return False

    def create_vmkernel_port(self, host_name, port_group_name, ip_address, netmask, mtu=DEFAULT_MTU):
        """
        Adds a VMkernel adapter with a static address to a port group.

        Returns the device name (e.g. 'vmk1'). If the port group already has a VMkernel
        adapter, its device is returned unchanged.
        """
        ipaddress.ip_address(ip_address)
        ipaddress.ip_network(f"0.0.0.0/{netmask}")
        host = self.host_manager.get_host(host_name)
        network_system = host.configManager.networkSystem

        for vnic in network_system.networkInfo.vnic or []:
            if vnic.portgroup == port_group_name:
                self.logger.warning(f"Port group '{port_group_name}' already has VMkernel adapter '{vnic.device}'.")
                return vnic.device

        vnic_spec = vim.host.VirtualNic.Specification()
        vnic_spec.ip = vim.host.IpConfig(dhcp=False, ipAddress=ip_address, subnetMask=netmask)
        vnic_spec.mtu = mtu
        device = network_system.AddVirtualNic(portgroup=port_group_name, nic=vnic_spec)
        self.logger.info(f"VMkernel adapter '{device}' ({ip_address}) added to '{port_group_name}' on '{host_name}'.")
        return device

    def tag_vmkernel_port(self, host_name, device, nic_type=NVME_TCP_NIC_TYPE):
        """Enables a service (NVMe over TCP by default) on a VMkernel adapter."""
        host = self.host_manager.get_host(host_name)
        try:
            host.configManager.virtualNicManager.SelectVnicForNicType(nicType=nic_type, device=device)
        except vmodl.MethodFault as e:
            self.logger.error(f"Failed to tag '{device}' for {nic_type} on '{host_name}': {self.extract_error_message(e)}")
            return False
        self.logger.info(f"VMkernel adapter '{device}' tagged for {nic_type} on '{host_name}'.")
        return True

    def configure_nvme_tcp_network(self, host_name, vswitch_name, port_group_name, ip_address, netmask,
                                   vlan_id=0, mtu=DEFAULT_MTU, nics=None):
        """
        Builds the host side of an NVMe/TCP storage network: vSwitch, port group and a
        VMkernel adapter tagged for NVMe over TCP. Stops at the first failing step.

        :return: dict with 'host', 'status', 'message' and, on success, 'device'.
        """
        result = {"host": host_name, "status": "failed"}
        if not self.create_vswitch(host_name, vswitch_name, mtu=mtu, nics=nics):
            result["message"] = f"vSwitch '{vswitch_name}' could not be created"
            return result
        if not self.create_port_group(host_name, vswitch_name, port_group_name, vlan_id):
            result["message"] = f"Port group '{port_group_name}' could not be created"
            return result
        try:
            device = self.create_vmkernel_port(host_name, port_group_name, ip_address, netmask, mtu)
        except vmodl.MethodFault as e:
            result["message"] = f"VMkernel adapter could not be added: {self.extract_error_message(e)}"
            self.logger.error(result["message"])
            return result
        if not self.tag_vmkernel_port(host_name, device):
            result["message"] = f"'{device}' could not be tagged for {NVME_TCP_NIC_TYPE}"
            return result
        result.update(status="success", device=device,
                      message=f"{device} on {port_group_name}/{vswitch_name} tagged {NVME_TCP_NIC_TYPE}")
        return result
