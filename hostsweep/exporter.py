"""
Writes scan results to a ';'-delimited file, falling back to a default path
and finally to a console table so that no result is ever lost.
"""
from __future__ import annotations
import csv
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional, Sequence, TextIO

from .models import ExportSchema, ResultSet, ScanSummary, WriteOutcome, WriteTier

logger = logging.getLogger(__name__)

DELIMITER = ';'
ENCODING = 'utf-8'
FALLBACK_NAME_FORMAT = "hostsweep_results_%Y%m%d_%H%M%S.csv"


def default_fallback_path(run_time: Optional[datetime] = None, directory: str = ".") -> str:
    """Returns the time-derived fallback file path for a run."""
    run_time = run_time or datetime.now()
    return os.path.join(directory, run_time.strftime(FALLBACK_NAME_FORMAT))


def render_table(header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Formats rows as an aligned plain-text table."""
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def _line(cells: Sequence[str]) -> str:
        return " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    separator = "-+-".join("-" * w for w in widths)
    lines = [_line(header), separator]
    lines.extend(_line(row) for row in rows)
    return "\n".join(lines)


class Exporter:
    """Serializes a result set with a primary -> fallback -> console write chain."""

    def __init__(self, console: Optional[TextIO] = None, sort_by_target: bool = False):
        self.console = console
        self.sort_by_target = sort_by_target

    @property
    def stream(self) -> TextIO:
        return self.console if self.console is not None else sys.stdout

    def rows(self, result_set: ResultSet, schema: ExportSchema) -> List[List[str]]:
        if self.sort_by_target:
            result_set = result_set.sorted_by_target()
        return [schema.row(result) for result in result_set]

    def write_file(self, path: str, schema: ExportSchema, rows: Sequence[Sequence[str]]) -> None:
        with open(path, 'w', encoding=ENCODING, newline='') as f:
            writer = csv.writer(f, delimiter=DELIMITER, lineterminator='\n')
            writer.writerow(schema.columns)
            writer.writerows(rows)

    def _write_primary(self, path: str, schema: ExportSchema, rows: Sequence[Sequence[str]]) -> None:
        """Writes the primary file, creating a missing parent directory once."""
        try:
            self.write_file(path, schema, rows)
        except FileNotFoundError:
            parent = os.path.dirname(os.path.abspath(path))
            if os.path.isdir(parent):
                raise
            logger.info("Creating missing output directory %s", parent)
            os.makedirs(parent, exist_ok=True)
            self.write_file(path, schema, rows)

    def export(
        self,
        result_set: ResultSet,
        schema: ExportSchema,
        primary_path: Optional[str],
        fallback_path: Optional[str] = None,
    ) -> WriteOutcome:
        """
        Persists the results and reports summary statistics.

        Tries `primary_path`, then `fallback_path` (defaulting to a
        timestamped file in the working directory), then prints the table.
        """
        rows = self.rows(result_set, schema)
        failures = []
        tier: Optional[WriteTier] = None
        written: Optional[str] = None

        if primary_path:
            try:
                self._write_primary(primary_path, schema, rows)
                tier, written = WriteTier.PRIMARY, primary_path
            except OSError as e:
                logger.warning("Could not write results to '%s': %s", primary_path, e)
                failures.append((WriteTier.PRIMARY, str(e)))

        if tier is None:
            fallback_path = fallback_path or default_fallback_path()
            try:
                self.write_file(fallback_path, schema, rows)
                tier, written = WriteTier.FALLBACK, fallback_path
            except OSError as e:
                logger.warning("Could not write results to fallback '%s': %s", fallback_path, e)
                failures.append((WriteTier.FALLBACK, str(e)))

        if tier is None:
            logger.error("All file outputs failed; printing %d result(s) to the console.", len(rows))
            print(render_table(schema.columns, rows), file=self.stream)
            tier = WriteTier.CONSOLE
        else:
            logger.info("Wrote %d result(s) to %s", len(rows), written)

        summary = ScanSummary.from_results(result_set, schema)
        self.report(summary)
        return WriteOutcome(tier=tier, path=written, summary=summary, failures=failures)

    def report(self, summary: ScanSummary) -> None:
        lines = summary.lines()
        for line in lines:
            logger.info(line)
        print("\n".join(["", "Summary:"] + ["  " + line for line in lines]), file=self.stream)
