"""
Manages the lifecycle of a scan: bounded dispatch of probes across targets.
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Dict, Optional, Sequence

from .aggregator import ResultAggregator
from .models import PingStatus, PortState, ProbeResult, ResultSet
from .prober import DEFAULT_PING_TIMEOUT_MS, DEFAULT_PORT_TIMEOUT_MS, Prober

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10

ProgressCallback = Callable[[int, int], None]


class ScanState(Enum):
    """Represents the scanning state of the manager."""
    IDLE = auto()
    SCANNING = auto()
    CANCELLING = auto()


class ScanManager:
    """Runs one probe per target with at most `concurrency_limit` in flight."""

    def __init__(
        self,
        prober: Optional[Prober] = None,
        concurrency_limit: int = DEFAULT_CONCURRENCY,
        on_progress: Optional[ProgressCallback] = None,
    ):
        if concurrency_limit < 1:
            raise ValueError(f"Concurrency limit must be at least 1, got {concurrency_limit}.")
        self.prober = prober if prober is not None else Prober()
        self.concurrency_limit = concurrency_limit
        self.on_progress = on_progress
        self.state = ScanState.IDLE
        self.stop_event = threading.Event()

    def cancel(self) -> bool:
        """
        Stops dispatching new probes; in-flight probes are left to finish.

        Returns False when no scan is running, so there was nothing to cancel.
        """
        if self.state != ScanState.SCANNING:
            return False
        logger.info("Cancellation requested; waiting for in-flight probes.")
        self.state = ScanState.CANCELLING
        self.stop_event.set()
        return True

    def run(
        self,
        targets: Sequence[str],
        ports: Sequence[int],
        ping_timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
        port_timeout_ms: int = DEFAULT_PORT_TIMEOUT_MS,
    ) -> ResultSet:
        """
        Probes every target exactly once and returns results in completion order.

        If `cancel()` is called during the run, the returned set holds only the
        probes that had already been dispatched and is marked cancelled.
        """
        if ping_timeout_ms <= 0 or port_timeout_ms <= 0:
            raise ValueError("Timeouts must be positive.")

        targets = tuple(targets)
        ports = tuple(ports)
        total = len(targets)
        if not targets:
            return ResultSet(results=(), total=0, cancelled=False)

        self.stop_event.clear()
        self.state = ScanState.SCANNING
        aggregator = ResultAggregator(expected=total)
        logger.info(
            "Scanning %d target(s), %d port(s), concurrency %d",
            total, len(ports), self.concurrency_limit,
        )

        def _worker(index: int, target: str):
            result = self.prober.probe(target, ports, ping_timeout_ms, port_timeout_ms)
            aggregator.put(index, result)

        in_flight: Dict[Future, int] = {}
        next_index = 0
        completed = 0
        try:
            with ThreadPoolExecutor(max_workers=self.concurrency_limit, thread_name_prefix="probe") as executor:
                while next_index < total or in_flight:
                    while (next_index < total and len(in_flight) < self.concurrency_limit
                           and not self.stop_event.is_set()):
                        future = executor.submit(_worker, next_index, targets[next_index])
                        in_flight[future] = next_index
                        next_index += 1

                    if not in_flight:
                        # Cancelled before anything else could be dispatched
                        break

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = in_flight.pop(future)
                        try:
                            future.result()
                        except Exception as e:
                            logger.error("Probe of '%s' failed with exception: %s", targets[index], e)
                            aggregator.put(index, self._failed_result(targets[index], ports))
                        aggregator.drain()
                        completed += 1
                        self._notify_progress(completed, total)
        finally:
            cancelled = self.stop_event.is_set() and next_index < total
            self.state = ScanState.IDLE

        result_set = aggregator.finalize(cancelled=cancelled)
        if cancelled:
            logger.warning("Scan cancelled: %d of %d target(s) probed.", len(result_set), total)
        else:
            logger.info("Scan complete: %d target(s) probed.", len(result_set))
        return result_set

    def _notify_progress(self, completed: int, total: int):
        if not self.on_progress:
            return
        try:
            self.on_progress(completed, total)
        except Exception as e:
            logger.warning("Progress callback raised %s: %s", type(e).__name__, e)

    @staticmethod
    def _failed_result(target: str, ports: Sequence[int]) -> ProbeResult:
        return ProbeResult(
            target=target,
            ping_status=PingStatus.FAILED,
            port_statuses={port: PortState.CLOSED for port in ports},
            timestamp=datetime.now(),
        )
