"""
Core scan controller for HostSweep.
"""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Sequence

from .exporter import Exporter, default_fallback_path
from .models import ExportSchema, ResultSet, WriteOutcome
from .network import NetworkBackend, SystemNetwork
from .parsing import parse_ports
from .prober import DEFAULT_PING_TIMEOUT_MS, DEFAULT_PORT_TIMEOUT_MS, Prober
from .scan_manager import DEFAULT_CONCURRENCY, ProgressCallback, ScanManager

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """What a run produced and where it was written."""
    result_set: ResultSet
    schema: ExportSchema
    outcome: WriteOutcome


def run_scan(
    targets: Sequence[str],
    ports: Iterable[object],
    concurrency_limit: int = DEFAULT_CONCURRENCY,
    ping_timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
    port_timeout_ms: int = DEFAULT_PORT_TIMEOUT_MS,
    primary_path: Optional[str] = None,
    fallback_path: Optional[str] = None,
    network: Optional[NetworkBackend] = None,
    exporter: Optional[Exporter] = None,
    on_progress: Optional[ProgressCallback] = None,
    manager: Optional[ScanManager] = None,
) -> ScanReport:
    """
    Probes `targets` on the given port tokens and exports the results.

    Port tokens are filtered before scheduling; the export schema is fixed
    from the filtered set and applied to every row.
    """
    port_set = parse_ports(ports)
    schema = ExportSchema(ports=port_set)
    if manager is None:
        manager = ScanManager(
            prober=Prober(network),
            concurrency_limit=concurrency_limit,
            on_progress=on_progress,
        )
    run_time = datetime.now()
    result_set = manager.run(targets, port_set, ping_timeout_ms, port_timeout_ms)

    exporter = exporter or Exporter()
    outcome = exporter.export(
        result_set,
        schema,
        primary_path,
        fallback_path or default_fallback_path(run_time),
    )
    return ScanReport(result_set=result_set, schema=schema, outcome=outcome)


class ScanController:
    """Builds scan runs from a configuration dictionary."""

    def __init__(self, config: Dict[str, Any], network: Optional[NetworkBackend] = None,
                 exporter: Optional[Exporter] = None):
        self.config = config
        self.network = network or SystemNetwork(config.get('ping_method', 'auto'))
        self.exporter = exporter or Exporter(sort_by_target=bool(config.get('sort_by_target', False)))
        self.manager: Optional[ScanManager] = None

    def primary_path(self) -> str:
        return os.path.join(
            self.config.get('output_directory', 'results'),
            self.config.get('output_filename', 'scan_results.csv'),
        )

    def default_ports(self) -> Sequence[object]:
        return self.config.get('default_ports_to_check', [])

    def run(
        self,
        targets: Sequence[str],
        ports: Optional[Iterable[object]] = None,
        primary_path: Optional[str] = None,
        fallback_path: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ScanReport:
        self.manager = ScanManager(
            prober=Prober(self.network),
            concurrency_limit=int(self.config.get('concurrency_limit', DEFAULT_CONCURRENCY)),
            on_progress=on_progress,
        )
        return run_scan(
            targets,
            self.default_ports() if ports is None else ports,
            ping_timeout_ms=int(self.config.get('ping_timeout_ms', DEFAULT_PING_TIMEOUT_MS)),
            port_timeout_ms=int(self.config.get('port_timeout_ms', DEFAULT_PORT_TIMEOUT_MS)),
            primary_path=primary_path or self.primary_path(),
            fallback_path=fallback_path,
            exporter=self.exporter,
            manager=self.manager,
        )

    def cancel(self) -> bool:
        """Cancels the active run. Returns False when no scan is running."""
        return self.manager is not None and self.manager.cancel()
