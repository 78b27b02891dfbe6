from __future__ import annotations
from typing import Protocol

from .ping import PING_METHODS, ping_host
from .utils import check_tcp_port


class NetworkBackend(Protocol):
    """Protocol for the network layer used by the prober."""

    def ping(self, host: str, timeout: float) -> bool:
        ...

    def connect(self, host: str, port: int, timeout: float) -> bool:
        ...


class SystemNetwork:
    """The real network: ICMP echo and TCP connect against live hosts."""

    def __init__(self, ping_method: str = "auto"):
        if ping_method not in PING_METHODS:
            raise ValueError(f"Unknown ping method '{ping_method}'. Use one of: {', '.join(PING_METHODS)}")
        self.ping_method = ping_method

    def ping(self, host: str, timeout: float) -> bool:
        return ping_host(host, timeout, self.ping_method)

    def connect(self, host: str, port: int, timeout: float) -> bool:
        return check_tcp_port(host, port, timeout)
