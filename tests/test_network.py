import errno
import socket
import struct
import subprocess
import time

import pytest

from hostsweep.network import SystemNetwork, ping, utils


@pytest.fixture(autouse=True)
def fresh_resolver_cache():
    utils.clear_resolver_cache()
    yield
    utils.clear_resolver_cache()


@pytest.fixture
def listening_port():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class StallingSocket:
    """Stands in for socket.socket: connects stall for the whole timeout, except to `answers`."""
    answers = set()
    attempts = []

    def __init__(self, family, kind):
        self.timeout = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def settimeout(self, timeout):
        self.timeout = timeout

    def connect_ex(self, sockaddr):
        StallingSocket.attempts.append((sockaddr[0], self.timeout))
        if sockaddr[0] in StallingSocket.answers:
            return 0
        time.sleep(self.timeout)
        return errno.ETIMEDOUT


def test_check_tcp_port_open(listening_port):
    assert utils.check_tcp_port("127.0.0.1", listening_port, 0.5) is True


def test_check_tcp_port_closed(closed_port):
    assert utils.check_tcp_port("127.0.0.1", closed_port, 0.5) is False


def test_port_check_shares_one_deadline_across_addresses(monkeypatch):
    addresses = tuple((socket.AF_INET, (ip, 0)) for ip in ("192.0.2.1", "192.0.2.2", "192.0.2.3"))
    monkeypatch.setattr(utils, "resolve_host", lambda host, timeout: addresses)
    monkeypatch.setattr(StallingSocket, "answers", {"192.0.2.3"})
    monkeypatch.setattr(StallingSocket, "attempts", [])
    monkeypatch.setattr(socket, "socket", StallingSocket)

    started = time.monotonic()
    is_open = utils.check_tcp_port("multi.example", 80, 0.2)
    elapsed = time.monotonic() - started

    assert is_open is False
    assert elapsed < 0.3
    assert [ip for ip, _ in StallingSocket.attempts] == ["192.0.2.1"]


def test_later_address_gets_only_the_time_left(monkeypatch):
    addresses = tuple((socket.AF_INET, (ip, 0)) for ip in ("192.0.2.1", "192.0.2.2"))
    monkeypatch.setattr(StallingSocket, "answers", {"192.0.2.2"})
    monkeypatch.setattr(StallingSocket, "attempts", [])
    monkeypatch.setattr(socket, "socket", StallingSocket)

    # First address fails after half the budget; the second must fit in the rest.
    def _half_stall(self, sockaddr):
        StallingSocket.attempts.append((sockaddr[0], self.timeout))
        if sockaddr[0] in StallingSocket.answers:
            return 0
        time.sleep(0.1)
        return errno.ECONNREFUSED

    monkeypatch.setattr(StallingSocket, "connect_ex", _half_stall)

    assert utils.connect_any(addresses, 80, time.monotonic() + 0.3) is True
    first, second = StallingSocket.attempts
    assert first[1] <= 0.3
    assert second[1] <= 0.2 + 0.05


def test_slow_lookup_is_bounded_by_the_check_timeout(monkeypatch):
    def _slow_lookup(*args, **kwargs):
        time.sleep(1.0)
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.9", 0))]

    monkeypatch.setattr(socket, "getaddrinfo", _slow_lookup)
    ran = []
    monkeypatch.setattr(ping, "system_ping", lambda *a: ran.append(a) or True)

    started = time.monotonic()
    assert utils.check_tcp_port("slowdns.example", 1, 0.2) is False
    assert ping.ping_host("slowdns-ping.example", 0.2, "system") is False
    elapsed = time.monotonic() - started

    assert elapsed < 0.8
    assert ran == []


def test_unresolvable_host_is_closed(monkeypatch):
    def _fail(*args, **kwargs):
        raise socket.gaierror("no such host")

    monkeypatch.setattr(socket, "getaddrinfo", _fail)
    assert utils.check_tcp_port("no-such-host.test", 80, 0.5) is False
    assert ping.ping_host("no-such-host.test", 0.5, "system") is False


def test_successful_lookups_are_cached(monkeypatch):
    calls = []

    def _lookup(host, *args, **kwargs):
        calls.append(host)
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.9", 0))]

    monkeypatch.setattr(socket, "getaddrinfo", _lookup)
    assert utils.resolve_host("cached.example", 0.5) == ((socket.AF_INET, ("192.0.2.9", 0)),)
    assert utils.resolve_host("cached.example", 0.5) == ((socket.AF_INET, ("192.0.2.9", 0)),)
    assert calls == ["cached.example"]


def test_ip_literals_resolve_without_lookup(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("literal addresses must not be looked up")

    monkeypatch.setattr(socket, "getaddrinfo", _fail)
    assert utils.resolve_host("192.0.2.7", 0.1) == ((socket.AF_INET, ("192.0.2.7", 0)),)
    assert utils.resolve_host("2001:db8::1", 0.1) == ((socket.AF_INET6, ("2001:db8::1", 0, 0, 0)),)
    assert utils.resolve_host("fe80::1%7", 0.1) == ((socket.AF_INET6, ("fe80::1", 0, 0, 7)),)


def test_ping_prefers_ipv4_address(monkeypatch):
    dual = ((socket.AF_INET6, ("2001:db8::5", 0, 0, 0)), (socket.AF_INET, ("192.0.2.5", 0)))
    monkeypatch.setattr(ping, "resolve_host", lambda host, timeout: dual)
    sent = []
    monkeypatch.setattr(ping, "system_ping", lambda address, v6, timeout: sent.append((address, v6, timeout)) or True)

    assert ping.ping_host("dual.example", 1.0, "system") is True
    (address, v6, timeout), = sent
    assert (address, v6) == ("192.0.2.5", False)
    assert 0 < timeout <= 1.0


@pytest.mark.parametrize("system, expected", [
    ("Linux", ["ping", "-n", "-q", "-c", "1", "-W", "2", "192.0.2.1"]),
    ("Darwin", ["ping", "-n", "-q", "-c", "1", "-W", "1500", "192.0.2.1"]),
    ("Windows", ["ping", "-n", "1", "-w", "1500", "192.0.2.1"]),
])
def test_build_ping_command(monkeypatch, system, expected):
    monkeypatch.setattr(ping.platform, "system", lambda: system)
    assert ping.build_ping_command("192.0.2.1", False, 1.5) == expected


def test_build_ping_command_ipv6(monkeypatch):
    monkeypatch.setattr(ping.platform, "system", lambda: "Linux")
    assert ping.build_ping_command("2001:db8::1", True, 1.0)[:2] == ["ping", "-6"]


def test_system_ping_outcomes(monkeypatch):
    monkeypatch.setattr(ping.platform, "system", lambda: "Linux")

    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout=""))
    assert ping.system_ping("192.0.2.1", False, 1.0) is True

    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1, stdout=""))
    assert ping.system_ping("192.0.2.1", False, 1.0) is False

    def _timeout(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, kw.get("timeout"))

    monkeypatch.setattr(subprocess, "run", _timeout)
    assert ping.system_ping("192.0.2.1", False, 1.0) is False

    def _missing(cmd, **kw):
        raise FileNotFoundError("ping")

    monkeypatch.setattr(subprocess, "run", _missing)
    assert ping.system_ping("192.0.2.1", False, 1.0) is False


def test_windows_unreachable_reply_is_a_failure(monkeypatch):
    monkeypatch.setattr(ping.platform, "system", lambda: "Windows")
    unreachable = "Reply from 192.0.2.254: Destination host unreachable."
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout=unreachable))
    assert ping.system_ping("192.0.2.1", False, 1.0) is False

    ok = "Reply from 192.0.2.1: bytes=32 time<1ms TTL=64"
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout=ok))
    assert ping.system_ping("192.0.2.1", False, 1.0) is True


def test_echo_request_checksum_verifies():
    packet = ping.echo_request(False, 0x1234, 7, b"abcde")
    assert packet[0] == ping.ICMP_ECHO_REQUEST
    assert ping.icmp_checksum(packet) == 0


def test_echo_request_ipv6_leaves_checksum_to_kernel():
    packet = ping.echo_request(True, 0x1234, 7, b"")
    assert struct.unpack('!BBHHH', packet) == (ping.ICMPV6_ECHO_REQUEST, 0, 0, 0x1234, 7)


def test_icmp_reply_matching():
    pinger = ping.ICMPPinger(timeout=0.1)
    ip_header = bytes([0x45]) + bytes(19)

    def _reply(icmp_type, ident, seq):
        return ip_header + struct.pack('!BBHHH', icmp_type, 0, 0, ident, seq)

    assert pinger._is_matching_reply(_reply(0, pinger.identifier, pinger.sequence), False)
    assert not pinger._is_matching_reply(_reply(3, pinger.identifier, pinger.sequence), False)
    assert not pinger._is_matching_reply(_reply(0, (pinger.identifier + 1) & 0xffff, pinger.sequence), False)
    assert not pinger._is_matching_reply(b"", False)
    v6 = struct.pack('!BBHHH', 129, 0, 0, pinger.identifier, pinger.sequence)
    assert pinger._is_matching_reply(v6, True)


def test_unknown_ping_method_is_rejected():
    with pytest.raises(ValueError):
        ping.ping_host("127.0.0.1", 0.1, "carrier-pigeon")
    with pytest.raises(ValueError):
        SystemNetwork("carrier-pigeon")


def test_system_network_routes_to_helpers(monkeypatch):
    calls = []
    monkeypatch.setattr("hostsweep.network.backend.ping_host", lambda h, t, m: calls.append(("ping", h, t, m)) or True)
    monkeypatch.setattr("hostsweep.network.backend.check_tcp_port", lambda h, p, t: calls.append(("tcp", h, p, t)) or False)

    network = SystemNetwork("system")
    assert network.ping("h", 1.0) is True
    assert network.connect("h", 80, 0.2) is False
    assert calls == [("ping", "h", 1.0, "system"), ("tcp", "h", 80, 0.2)]
