"""
ICMP reachability checks, via raw sockets or the platform's ping command.
"""
import logging
import math
import platform
import random
import select
import socket
import struct
import subprocess
import time
from typing import List

from ..privileges import is_admin
from .utils import Address, remaining, resolve_host

logger = logging.getLogger(__name__)

ICMP_ECHO_REQUEST = 8
ICMP_ECHO_REPLY = 0
ICMPV6_ECHO_REQUEST = 128
ICMPV6_ECHO_REPLY = 129

PING_METHODS = ("auto", "icmp", "system")


def icmp_checksum(data: bytes) -> int:
    """RFC 1071 one's-complement sum over 16-bit words."""
    padded = data + b'\x00' * (len(data) & 1)
    total = 0
    for i in range(0, len(padded), 2):
        total += int.from_bytes(padded[i:i + 2], 'big')
    while total >> 16:
        total = (total & 0xffff) + (total >> 16)
    return ~total & 0xffff


def echo_request(is_ipv6: bool, identifier: int, sequence: int, payload: bytes) -> bytes:
    """Builds an ICMP (or ICMPv6) echo request; the kernel fills the ICMPv6 checksum."""
    icmp_type = ICMPV6_ECHO_REQUEST if is_ipv6 else ICMP_ECHO_REQUEST
    unsummed = struct.pack('!BBHHH', icmp_type, 0, 0, identifier, sequence) + payload
    checksum = 0 if is_ipv6 else icmp_checksum(unsummed)
    return struct.pack('!BBHHH', icmp_type, 0, checksum, identifier, sequence) + payload


class ICMPPinger:
    """Sends a single ICMP echo request over a raw socket."""

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout
        self.identifier = random.randint(0, 0xffff)
        self.sequence = random.randint(0, 0xffff)

    def ping(self, address: Address) -> bool:
        """
        Returns True iff an echo reply matching our identifier and sequence
        arrives before the timeout. Anything else counts as a failure.
        """
        family, sockaddr = address
        is_ipv6 = family == socket.AF_INET6
        proto = socket.IPPROTO_ICMPV6 if is_ipv6 else socket.IPPROTO_ICMP
        self.sequence = (self.sequence + 1) & 0xffff
        packet = echo_request(is_ipv6, self.identifier, self.sequence, struct.pack('!d', time.time()))
        deadline = time.monotonic() + self.timeout
        try:
            with socket.socket(family, socket.SOCK_RAW, proto) as sock:
                sock.sendto(packet, sockaddr)
                while True:
                    budget = remaining(deadline)
                    if budget <= 0:
                        return False
                    ready, _, _ = select.select([sock], [], [], budget)
                    if not ready:
                        return False
                    data, _ = sock.recvfrom(1024)
                    if self._is_matching_reply(data, is_ipv6):
                        return True
        except OSError as e:
            logger.debug("Raw ICMP ping to %s failed: %s", sockaddr[0], e)
            return False

    def _is_matching_reply(self, data: bytes, is_ipv6: bool) -> bool:
        # IPv4 raw sockets hand back the IP header; IPv6 ones do not.
        if not data:
            return False
        offset = 0 if is_ipv6 else (data[0] & 0x0f) * 4
        header = data[offset:offset + 8]
        if len(header) < 8:
            return False
        icmp_type, _, _, identifier, sequence = struct.unpack('!BBHHH', header)
        expected = ICMPV6_ECHO_REPLY if is_ipv6 else ICMP_ECHO_REPLY
        return icmp_type == expected and identifier == self.identifier and sequence == self.sequence


def build_ping_command(address: str, use_ipv6: bool, timeout: float) -> List[str]:
    """Builds a one-shot ping command line for the current platform."""
    system = platform.system().lower()
    command: List[str] = ['ping']
    if use_ipv6:
        command.append('-6')
    if system == 'windows':
        # -n count, -w timeout in ms
        command.extend(['-n', '1', '-w', str(max(1, int(timeout * 1000))), address])
    elif system == 'darwin':
        # -W wait time in ms on macOS
        command.extend(['-n', '-q', '-c', '1', '-W', str(max(1, int(timeout * 1000))), address])
    else:
        # -W wait time in whole seconds on iputils; the subprocess timeout enforces the exact bound
        command.extend(['-n', '-q', '-c', '1', '-W', str(max(1, math.ceil(timeout))), address])
    return command


def system_ping(address: str, use_ipv6: bool, timeout: float) -> bool:
    """Runs the platform ping command once; success iff it exits with status 0 in time."""
    command = build_ping_command(address, use_ipv6, timeout)
    is_windows = platform.system().lower() == 'windows'
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0) if is_windows else 0,
        )
    except subprocess.TimeoutExpired:
        return False
    except (FileNotFoundError, OSError) as e:
        logger.debug("System ping for %s could not run: %s", address, e)
        return False
    # Windows ping exits 0 on "Destination host unreachable" replies.
    if is_windows and not use_ipv6 and "TTL=" not in completed.stdout.upper():
        return False
    return completed.returncode == 0


def ping_host(host: str, timeout: float, method: str = "auto") -> bool:
    """
    Sends one reachability probe to host and waits at most `timeout` seconds,
    name lookup included.

    `method` is one of "icmp" (raw socket), "system" (ping command) or "auto",
    which uses raw ICMP when running with elevated privileges.
    """
    if method not in PING_METHODS:
        raise ValueError(f"Unknown ping method '{method}'. Use one of: {', '.join(PING_METHODS)}")
    deadline = time.monotonic() + timeout
    addresses = resolve_host(host, timeout)
    if not addresses:
        logger.debug("Ping skipped, %s did not resolve in time", host)
        return False
    # IPv4 first when both families are present
    address = min(addresses, key=lambda a: a[0] != socket.AF_INET)
    budget = remaining(deadline)
    if budget <= 0:
        return False
    if method == "icmp" or (method == "auto" and is_admin()):
        return ICMPPinger(timeout=budget).ping(address)
    family, sockaddr = address
    return system_ping(sockaddr[0], family == socket.AF_INET6, budget)


def default_ping_method() -> str:
    """Reports which ping method "auto" resolves to in this process."""
    return "icmp" if is_admin() else "system"
