"""
Network-related utilities for HostSweep.
"""

from .backend import NetworkBackend, SystemNetwork
from .ping import PING_METHODS, default_ping_method, ping_host
from .utils import check_tcp_port, resolve_host

__all__ = [
    "NetworkBackend",
    "SystemNetwork",
    "PING_METHODS",
    "default_ping_method",
    "ping_host",
    "check_tcp_port",
    "resolve_host",
]
