"""
Probes a single target: one reachability check plus one TCP check per port.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, Optional, Sequence

from .models import PingStatus, PortState, ProbeResult
from .network import NetworkBackend, SystemNetwork

logger = logging.getLogger(__name__)

DEFAULT_PING_TIMEOUT_MS = 1000
DEFAULT_PORT_TIMEOUT_MS = 200


class Prober:
    """Stateless prober; every call is independent of the previous one."""

    def __init__(self, network: Optional[NetworkBackend] = None):
        self.network = network if network is not None else SystemNetwork()

    def check_ping(self, target: str, timeout_ms: int) -> PingStatus:
        try:
            ok = self.network.ping(target, timeout_ms / 1000.0)
        except Exception as e:
            logger.debug("Ping check for %s raised %s: %s", target, type(e).__name__, e)
            return PingStatus.FAILED
        return PingStatus.SUCCESS if ok else PingStatus.FAILED

    def check_port(self, target: str, port: int, timeout_ms: int) -> PortState:
        try:
            ok = self.network.connect(target, port, timeout_ms / 1000.0)
        except Exception as e:
            logger.debug("Port check %s:%d raised %s: %s", target, port, type(e).__name__, e)
            return PortState.CLOSED
        return PortState.OPEN if ok else PortState.CLOSED

    def probe(
        self,
        target: str,
        ports: Sequence[int],
        ping_timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
        port_timeout_ms: int = DEFAULT_PORT_TIMEOUT_MS,
    ) -> ProbeResult:
        """
        Pings the target, then checks every port.

        Port checks run regardless of the ping outcome: plenty of hosts drop
        ICMP while still serving TCP.
        """
        ping_status = self.check_ping(target, ping_timeout_ms)
        port_statuses: Dict[int, PortState] = {}
        for port in ports:
            port_statuses[port] = self.check_port(target, port, port_timeout_ms)
        logger.debug("Probed %s: ping=%s ports=%s", target, ping_status.value,
                     {p: s.value for p, s in port_statuses.items()})
        return ProbeResult(
            target=target,
            ping_status=ping_status,
            port_statuses=port_statuses,
            timestamp=datetime.now(),
        )
