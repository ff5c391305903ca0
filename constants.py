
# fabricbuild/constants.py
"""
Central location for constants used across the application.
"""

# ==============================================================================
# NVME OVER FABRICS
# ==============================================================================
# Driver reported by software NVMe/TCP storage adapters (vmhbaNN).
NVME_TCP_DRIVER = "nvmetcp"
# Canonical device-id prefix of NVMe namespaces presented to ESXi.
NVME_DEVICE_PREFIX = "eui."
NVME_TRANSPORT_PROTOCOL = "TCP"
NQN_PREFIX = "nqn."

# Tuning defaults for `esxcli nvme fabrics connect`.
DEFAULT_ADMIN_QUEUE_SIZE = 32
DEFAULT_CONTROLLER_ID = 65535
DEFAULT_IO_QUEUE_NUMBER = 8
DEFAULT_IO_QUEUE_SIZE = 256
DEFAULT_KEEP_ALIVE_TIMEOUT = 256
DEFAULT_PORT_NUMBER = 4420

# ==============================================================================
# HOST / SSH
# ==============================================================================
HOST_CONNECTED_STATE = "connected"
DEFAULT_SSH_PORT = 22
DEFAULT_SSH_TIMEOUT = 30
DEFAULT_ESXI_USER = "root"

# ==============================================================================
# DATASTORES
# ==============================================================================
DATASTORE_NAME_MAX_LENGTH = 42
DATASTORE_NAME_FORBIDDEN_CHARS = "/\\%"
DEFAULT_VMFS_VERSION = 6
SUPPORTED_VMFS_VERSIONS = (5, 6)
# Canonical names accepted as datastore backing devices.
DEVICE_NAME_PATTERN = r"^(naa|eui|t10|mpx)\.[A-Za-z0-9:._-]+$"
GB = 1024 ** 3

# ==============================================================================
# NETWORK
# ==============================================================================
NVME_TCP_NIC_TYPE = "nvmeTcp"
DEFAULT_VSWITCH_PORTS = 128
DEFAULT_MTU = 1500

# ==============================================================================
# LOGGING
# ==============================================================================
DB_NAME = "fabricbuild_db"
LOG_COLLECTION = "logs"
LOG_STREAM_PREFIX = "log_stream::"

# ==============================================================================
# CLI OUTPUT
# ==============================================================================
RED = '\033[91m'
GREEN = '\033[92m'
YELLOW = '\033[93m'
ENDC = '\033[0m'
