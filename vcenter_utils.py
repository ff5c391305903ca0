# vcenter_utils.py
"""vCenter utility functions."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from managers.vcenter import VCenter

load_dotenv()
logger = logging.getLogger('fabricbuild.vcenter')


def _env_flag(name: str) -> bool:
    return os.getenv(name, "False").lower() in ('true', '1', 't', 'yes')


def get_vcenter_instance(vcenter_host: Optional[str] = None) -> Optional[VCenter]:
    """
    Create and connect a VCenter service instance.

    The address defaults to VC_HOST; credentials come from VC_USER and VC_PASS.
    Returns None if anything is missing or the connection fails.
    """
    vc_host = vcenter_host or os.getenv("VC_HOST")
    vc_user = os.getenv("VC_USER")
    vc_pass = os.getenv("VC_PASS")
    if not vc_host:
        logger.error("vCenter address missing: pass --vcenter or set VC_HOST.")
        return None
    if not vc_user or not vc_pass:
        logger.error("vCenter credentials missing from env vars (VC_USER, VC_PASS).")
        return None

    disable_ssl_verification = _env_flag("VC_DISABLE_SSL_VERIFY")
    if disable_ssl_verification:
        logger.warning("vCenter SSL certificate verification is disabled via VC_DISABLE_SSL_VERIFY.")

    service_instance = VCenter(vc_host, vc_user, vc_pass, port=int(os.getenv("VC_PORT", 443)),
                               disable_ssl_verification=disable_ssl_verification)
    if not service_instance.connect():
        logger.error(f"get_vcenter_instance: could not connect to {vc_host}")
        return None
    return service_instance
