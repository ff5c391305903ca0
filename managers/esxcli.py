"""esxcli over SSH, one session per ESXi host."""

import csv
import io
import logging
import os
import shlex
import socket
from dataclasses import dataclass
from typing import List, Optional

import paramiko
from dotenv import load_dotenv

from constants import (
    DEFAULT_ESXI_USER, DEFAULT_SSH_PORT, DEFAULT_SSH_TIMEOUT, NVME_TRANSPORT_PROTOCOL
)

load_dotenv()
logger = logging.getLogger('fabricbuild.esxcli')


class EsxCliError(Exception):
    """Raised when an esxcli session cannot be opened or a command cannot be delivered."""


@dataclass(frozen=True)
class EsxCliResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass(frozen=True)
class NvmeController:
    """One row of `esxcli nvme controller list`."""
    name: str
    controller_number: int
    adapter: str
    transport_type: str = ""
    online: bool = True


def _normalize_key(key):
    return (key or "").replace(" ", "").replace("_", "").lower()


def parse_csv(output):
    """
    Parses `esxcli --formatter=csv` output into a list of dicts with normalized keys
    ('Controller Number' and 'ControllerNumber' both become 'controllernumber').
    """
    reader = csv.DictReader(io.StringIO(output.strip()))
    rows = []
    for row in reader:
        rows.append({_normalize_key(k): (v or "").strip() for k, v in row.items() if k})
    return rows


class EsxCliSession:
    def __init__(self, host_name, username=DEFAULT_ESXI_USER, password=None, key_filename=None,
                 port=DEFAULT_SSH_PORT, timeout=DEFAULT_SSH_TIMEOUT):
        self.host_name = host_name
        self.username = username
        self.password = password
        self.key_filename = key_filename
        self.port = port
        self.timeout = timeout
        self.client = None

    @classmethod
    def from_env(cls, host_name):
        """Builds a session for host_name with credentials from ESXI_* environment variables."""
        return cls(
            host_name,
            username=os.getenv("ESXI_USER", DEFAULT_ESXI_USER),
            password=os.getenv("ESXI_PASS"),
            key_filename=os.getenv("ESXI_SSH_KEY") or None,
            port=int(os.getenv("ESXI_SSH_PORT", DEFAULT_SSH_PORT)),
            timeout=int(os.getenv("ESXI_SSH_TIMEOUT", DEFAULT_SSH_TIMEOUT)),
        )

    def open(self):
        """Opens the SSH connection. Returns self so callers can chain from_env(...).open()."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(hostname=self.host_name, port=self.port, username=self.username,
                           password=self.password, key_filename=self.key_filename,
                           timeout=self.timeout, look_for_keys=self.key_filename is None and self.password is None)
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise EsxCliError(f"SSH to {self.host_name} failed: {e}") from e
        self.client = client
        logger.debug(f"SSH session opened to {self.host_name}.")
        return self

    def close(self):
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.debug(f"SSH session to {self.host_name} closed.")

    def __enter__(self):
        if self.client is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def run(self, *args, formatter: Optional[str] = None) -> EsxCliResult:
        """
        Runs `esxcli [--formatter=...] <args>` on the host.

        A non-zero exit status is returned, not raised; only transport failures raise EsxCliError.
        """
        if self.client is None:
            raise EsxCliError(f"Session to {self.host_name} is not open.")
        parts = ["esxcli"]
        if formatter:
            parts.append(f"--formatter={formatter}")
        parts.extend(str(arg) for arg in args)
        command = " ".join(shlex.quote(part) for part in parts)
        logger.debug(f"[{self.host_name}] {command}")
        try:
            _, stdout, stderr = self.client.exec_command(command, timeout=self.timeout)
            out = (stdout.read() or b"").decode("utf-8", "ignore")
            err = (stderr.read() or b"").decode("utf-8", "ignore")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as e:
            raise EsxCliError(f"[{self.host_name}] '{command}' failed: {e}") from e
        if exit_status != 0:
            logger.debug(f"[{self.host_name}] exit {exit_status}: {(err or out).strip()}")
        return EsxCliResult(exit_status, out, err)

    def connect_fabric(self, adapter, address, subsystem_nqn, tuning) -> bool:
        """Connects adapter to the NVMe subsystem at address using the FabricTuning values."""
        result = self.run(
            "nvme", "fabrics", "connect",
            "--adapter", adapter,
            "--ip-address", address,
            "--port-number", tuning.port_number,
            "--subsystem-nqn", subsystem_nqn,
            "--admin-queue-size", tuning.admin_queue_size,
            "--controller-id", tuning.controller_id,
            "--io-queue-number", tuning.io_queue_number,
            "--io-queue-size", tuning.io_queue_size,
            "--keep-alive-timeout", tuning.keep_alive_timeout,
        )
        if not result.ok:
            logger.warning(f"[{self.host_name}] connect {adapter} -> {address}: {(result.stderr or result.stdout).strip()}")
        return result.ok

    def list_controllers(self) -> List[NvmeController]:
        result = self.run("nvme", "controller", "list", formatter="csv")
        if not result.ok:
            raise EsxCliError(f"[{self.host_name}] nvme controller list failed: {result.stderr.strip()}")
        controllers = []
        for row in parse_csv(result.stdout):
            try:
                number = int(row.get("controllernumber", ""))
            except ValueError:
                logger.warning(f"[{self.host_name}] Ignoring controller row without a number: {row}")
                continue
            controllers.append(NvmeController(
                name=row.get("name", ""),
                controller_number=number,
                adapter=row.get("adapter", ""),
                transport_type=row.get("transporttype", ""),
                online=row.get("isonline", "true").lower() == "true",
            ))
        return controllers

    def disconnect_fabric(self, adapter, controller_number, subsystem_nqn) -> bool:
        result = self.run(
            "nvme", "fabrics", "disconnect",
            "--adapter", adapter,
            "--controller-number", controller_number,
            "--subsystem-nqn", subsystem_nqn,
        )
        if not result.ok:
            logger.warning(f"[{self.host_name}] disconnect {adapter}#{controller_number}: {(result.stderr or result.stdout).strip()}")
        return result.ok

    def rescan_storage(self) -> bool:
        return self.run("storage", "core", "adapter", "rescan", "--all").ok

    def enable_fabric_adapter(self, nic, protocol=NVME_TRANSPORT_PROTOCOL) -> bool:
        """Creates a software NVMe over fabrics adapter bound to the physical NIC."""
        result = self.run("nvme", "fabrics", "enable", "--protocol", protocol, "--device", nic)
        if not result.ok:
            logger.warning(f"[{self.host_name}] enable {protocol} on {nic}: {(result.stderr or result.stdout).strip()}")
        return result.ok

    def list_fabric_adapters(self):
        result = self.run("nvme", "adapter", "list", formatter="csv")
        if not result.ok:
            raise EsxCliError(f"[{self.host_name}] nvme adapter list failed: {result.stderr.strip()}")
        return parse_csv(result.stdout)
