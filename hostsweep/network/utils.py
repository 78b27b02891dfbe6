"""
Name resolution and TCP connect checks, each bounded by a caller deadline.
"""
import ipaddress
import logging
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# (family, sockaddr) pairs ready to hand to socket.connect_ex
Address = Tuple[int, tuple]

_resolver = ThreadPoolExecutor(max_workers=8, thread_name_prefix="resolve")
_resolved: Dict[str, Tuple[Address, ...]] = {}
_resolved_lock = threading.Lock()


def remaining(deadline: float) -> float:
    """Seconds left until `deadline` (a time.monotonic() value), never negative."""
    return max(0.0, deadline - time.monotonic())


def _literal_address(host: str) -> Optional[Address]:
    ip_part, _, zone = host.partition('%')
    try:
        ip = ipaddress.ip_address(ip_part)
    except ValueError:
        return None
    if ip.version == 4:
        return socket.AF_INET, (str(ip), 0)
    scope_id = 0
    if zone:
        try:
            scope_id = int(zone) if zone.isdigit() else socket.if_nametoindex(zone)
        except OSError:
            scope_id = 0
    return socket.AF_INET6, (str(ip), 0, 0, scope_id)


def _lookup(host: str) -> Tuple[Address, ...]:
    addresses = []
    for family, _, _, _, sockaddr in socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP):
        if family in (socket.AF_INET, socket.AF_INET6):
            entry = (family, tuple(sockaddr))
            if entry not in addresses:
                addresses.append(entry)
    return tuple(addresses)


def resolve_host(host: str, timeout: float) -> Tuple[Address, ...]:
    """
    Returns the addresses for `host`, waiting at most `timeout` seconds.

    IP literals skip the lookup. Successful lookups are cached for the life of
    the process; a failed or timed-out lookup yields () and is not cached.
    """
    literal = _literal_address(host)
    if literal is not None:
        return (literal,)
    with _resolved_lock:
        cached = _resolved.get(host)
    if cached is not None:
        return cached

    future = _resolver.submit(_lookup, host)
    try:
        addresses = future.result(timeout=timeout)
    except FutureTimeout:
        logger.debug("Lookup of %s did not finish within %.3fs", host, timeout)
        return ()
    except (socket.gaierror, UnicodeError, OSError) as e:
        logger.debug("Could not resolve %s: %s", host, e)
        return ()

    if addresses:
        with _resolved_lock:
            _resolved[host] = addresses
    return addresses


def clear_resolver_cache() -> None:
    with _resolved_lock:
        _resolved.clear()


def with_port(address: Address, port: int) -> tuple:
    family, sockaddr = address
    if family == socket.AF_INET:
        return (sockaddr[0], port)
    return (sockaddr[0], port, sockaddr[2], sockaddr[3])


def connect_any(addresses: Tuple[Address, ...], port: int, deadline: float) -> bool:
    """
    Tries each address in turn until one accepts a TCP connection.

    All attempts share `deadline`; once it passes the port counts as closed
    even if a later address would have answered.
    """
    for address in addresses:
        budget = remaining(deadline)
        if budget <= 0:
            return False
        try:
            with socket.socket(address[0], socket.SOCK_STREAM) as sock:
                sock.settimeout(budget)
                connected = sock.connect_ex(with_port(address, port)) == 0
        except OSError:
            continue
        if connected and remaining(deadline) > 0:
            return True
    return False


def check_tcp_port(host: str, port: int, timeout: float) -> bool:
    """True iff `host` accepts a TCP connection on `port` within `timeout` seconds, lookup included."""
    deadline = time.monotonic() + timeout
    addresses = resolve_host(host, timeout)
    return connect_any(addresses, port, deadline)
