from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class PingStatus(Enum):
    """Outcome of a single reachability check."""
    SUCCESS = "Success"
    FAILED = "Failed"


class PortState(Enum):
    """Outcome of a single TCP connect attempt."""
    OPEN = "Open"
    CLOSED = "Closed"


@dataclass(frozen=True)
class ProbeResult:
    """Represents the result of one ping and its port checks for a single target."""
    target: str
    ping_status: PingStatus
    port_statuses: Mapping[int, PortState]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def reachable(self) -> bool:
        return self.ping_status is PingStatus.SUCCESS


@dataclass(frozen=True)
class ResultSet:
    """
    The finalized collection of probe results, in completion order.

    `total` is the number of targets submitted. Unless the run was cancelled,
    `len(results) == total`.
    """
    results: Tuple[ProbeResult, ...] = ()
    total: int = 0
    cancelled: bool = False

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    def sorted_by_target(self) -> ResultSet:
        ordered = tuple(sorted(self.results, key=lambda r: r.target))
        return ResultSet(results=ordered, total=self.total, cancelled=self.cancelled)


@dataclass(frozen=True)
class ExportSchema:
    """Column layout for a run, derived once from the validated port set."""
    ports: Tuple[int, ...]

    @property
    def columns(self) -> List[str]:
        return ["Target", "Ping"] + [f"Port_{port}" for port in self.ports] + ["Timestamp"]

    def row(self, result: ProbeResult) -> List[str]:
        """Formats a result strictly by this schema's ports."""
        cells = [result.target, result.ping_status.value]
        for port in self.ports:
            cells.append(result.port_statuses[port].value)
        cells.append(result.timestamp.strftime(TIMESTAMP_FORMAT))
        return cells


@dataclass
class PortCounts:
    open: int = 0
    closed: int = 0


@dataclass
class ScanSummary:
    """Ping and per-port counts for a result set."""
    total: int
    ping_success: int
    ping_failed: int
    ports: Dict[int, PortCounts] = field(default_factory=dict)

    @staticmethod
    def fraction(count: int, total: int) -> float:
        return count / total if total else 0.0

    @classmethod
    def from_results(cls, result_set: ResultSet, schema: ExportSchema) -> ScanSummary:
        total = len(result_set)
        success = sum(1 for r in result_set if r.reachable)
        ports = {port: PortCounts() for port in schema.ports}
        for result in result_set:
            for port in schema.ports:
                if result.port_statuses[port] is PortState.OPEN:
                    ports[port].open += 1
                else:
                    ports[port].closed += 1
        return cls(total=total, ping_success=success, ping_failed=total - success, ports=ports)

    def lines(self) -> List[str]:
        t = self.total
        out = [
            f"Targets: {t}",
            f"Ping Success: {self.ping_success}/{t} ({self.fraction(self.ping_success, t):.1%})",
            f"Ping Failed: {self.ping_failed}/{t} ({self.fraction(self.ping_failed, t):.1%})",
        ]
        for port, counts in self.ports.items():
            out.append(
                f"Port {port}: Open {counts.open}/{t} ({self.fraction(counts.open, t):.1%}), "
                f"Closed {counts.closed}/{t} ({self.fraction(counts.closed, t):.1%})"
            )
        return out


class WriteTier(Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    CONSOLE = "console"


@dataclass
class WriteOutcome:
    """Where the results ended up and what failed on the way there."""
    tier: WriteTier
    path: Optional[str]
    summary: ScanSummary
    failures: List[Tuple[WriteTier, str]] = field(default_factory=list)

    @property
    def written_to_file(self) -> bool:
        return self.tier is not WriteTier.CONSOLE
