import threading
import time
from typing import Iterable, Optional, Set, Tuple

import pytest


class FakeNetwork:
    """
    Deterministic network backend.

    `reachable` lists hosts that answer ping; `open_ports` lists (host, port)
    pairs that accept connections. `delay` makes each check take that long so
    overlapping probes can be observed.
    """

    def __init__(
        self,
        reachable: Iterable[str] = (),
        open_ports: Iterable[Tuple[str, int]] = (),
        delay: float = 0.0,
        raise_on: Optional[Set[str]] = None,
    ):
        self.reachable = set(reachable)
        self.open_ports = set(open_ports)
        self.delay = delay
        self.raise_on = raise_on or set()
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.ping_calls = []
        self.connect_calls = []

    def _enter(self):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def _leave(self):
        with self.lock:
            self.active -= 1

    def ping(self, host: str, timeout: float) -> bool:
        with self.lock:
            self.ping_calls.append((host, timeout))
        self._enter()
        try:
            if self.delay:
                time.sleep(self.delay)
            if host in self.raise_on:
                raise OSError("network is unreachable")
            return host in self.reachable
        finally:
            self._leave()

    def connect(self, host: str, port: int, timeout: float) -> bool:
        with self.lock:
            self.connect_calls.append((host, port, timeout))
        if host in self.raise_on:
            raise ConnectionRefusedError("refused")
        return (host, port) in self.open_ports


@pytest.fixture
def make_network():
    return FakeNetwork


@pytest.fixture
def fake_network():
    return FakeNetwork(
        reachable={"10.0.0.1"},
        open_ports={("10.0.0.1", 80)},
    )
