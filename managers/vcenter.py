from pyVim.connect import SmartConnect, Disconnect
from pyVmomi import vim, vmodl
from pyVim.task import WaitForTask
import ssl
import atexit
import logging
logger = logging.getLogger('fabricbuild.vcenter')


class InventoryNotFound(LookupError):
    """Raised when a named inventory object (cluster, host, datastore) does not exist."""


class VCenter:
    def __init__(self, host, user, password, port=443, disable_ssl_verification=False):
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.connection = None
        self.logger = logger
        self.disable_ssl_verification = disable_ssl_verification

    def connect(self):
        """Establishes a connection to the vCenter server. Returns True on success."""
        try:
            ssl_context = None
            if self.disable_ssl_verification:
                self.logger.warning(
                    f"Connecting to vCenter {self.host} with SSL certificate verification DISABLED. "
                    "This should only be used in trusted environments."
                )
                ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            self.connection = SmartConnect(host=self.host,
                                           user=self.user,
                                           pwd=self.password,
                                           port=self.port,
                                           sslContext=ssl_context)

            if self.connection:
                atexit.register(Disconnect, self.connection)
                self.logger.info(f"Connected to vCenter server: {self.host}")
                return True
            self.logger.error(f"SmartConnect returned None for vCenter: {self.host}.")
        except ssl.SSLCertVerificationError as ssl_verify_error:
            self.logger.error(
                f"SSL certificate verification failed for vCenter {self.host}: {ssl_verify_error}. "
                "Set VC_DISABLE_SSL_VERIFY=true for a trusted lab with a self-signed certificate."
            )
        except vim.fault.InvalidLogin as e:
            self.logger.error(f"Invalid login credentials for vCenter {self.host}: {e.msg}")
        except ConnectionRefusedError as e:
            self.logger.error(f"Connection refused by vCenter {self.host}:{self.port}: {e}")
        except Exception as e:
            self.logger.error(f"Failed to connect to vCenter {self.host}: {e}", exc_info=True)
        self.connection = None
        return False

    def is_connected(self):
        """Checks if the service instance is connected."""
        return self.connection is not None and self.connection.content.sessionManager.currentSession is not None

    def get_content(self):
        """Retrieves the service content from vCenter."""
        return self.connection.RetrieveContent()

    def get_obj(self, vimtype, name):
        """
        Retrieves an object by name from vCenter using the property collector.
        Returns None when no object of that type carries the name.
        """
        content = self.get_content()
        container = content.viewManager.CreateContainerView(content.rootFolder, vimtype, True)
        try:
            property_spec = vmodl.query.PropertyCollector.PropertySpec(type=vimtype[0], pathSet=["name"], all=False)
            traversal_spec = vmodl.query.PropertyCollector.TraversalSpec(name='traverseEntities', path='view', skip=False, type=vim.view.ContainerView)
            object_spec = vmodl.query.PropertyCollector.ObjectSpec(obj=container, skip=True, selectSet=[traversal_spec])
            filter_spec = vmodl.query.PropertyCollector.FilterSpec(objectSet=[object_spec], propSet=[property_spec])

            props = content.propertyCollector.RetrieveContents([filter_spec])
            for obj in props:
                if obj.propSet[0].val == name:
                    return obj.obj
        finally:
            container.Destroy()

        return None

    def extract_error_message(self, exception):
        """
        Extracts a readable message from a vSphere API fault, falling back to str(exception).
        """
        if getattr(exception, 'localizedMessage', None):
            return exception.localizedMessage
        if getattr(exception, 'msg', None):
            return exception.msg
        if getattr(exception, 'reason', None):
            return str(exception.reason)
        if getattr(exception, 'faultCause', None):
            return f"Fault cause: {exception.faultCause}"
        return str(exception)

    def wait_for_task(self, task):
        """
        Waits for a vCenter task to finish.

        :param task: The vCenter task to wait on.
        :return: True if the task completes successfully, False otherwise.
        """
        try:
            WaitForTask(task)
            self.logger.debug("Task completed successfully.")
            return True
        except vim.fault.VimFault as vim_error:
            self.logger.error(f"Task failed with a vCenter fault: {self.extract_error_message(vim_error)}")
            return False
        except Exception as e:
            task_info = getattr(task, 'info', None)
            error_details = (
                task_info.error.localizedMessage if task_info and task_info.error else self.extract_error_message(e)
            )
            self.logger.error(f"Task failed: {error_details}")
            return False
