"""
Collects probe results from worker threads into a single result set.
"""
from __future__ import annotations
import logging
import queue
import threading
from typing import List, Set, Tuple

from .exceptions import AggregatorClosedError, CardinalityError
from .models import ProbeResult, ResultSet

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Append-only result channel.

    Workers call `put()` from any thread; a single consumer calls `drain()`
    to move queued results into the ordered collection, then `finalize()`
    once the run is over.
    """

    def __init__(self, expected: int):
        self.expected = expected
        self.update_queue: queue.Queue[Tuple[int, ProbeResult]] = queue.Queue()
        self._results: List[ProbeResult] = []
        self._seen: Set[int] = set()
        self._closed = threading.Event()

    def put(self, index: int, result: ProbeResult) -> None:
        """Queues the result for submission slot `index`."""
        if self._closed.is_set():
            raise AggregatorClosedError(f"Result for '{result.target}' arrived after the run was finalized.")
        self.update_queue.put((index, result))

    def drain(self) -> int:
        """Moves every queued result into the collection and returns how many were accepted."""
        accepted = 0
        try:
            while True:
                index, result = self.update_queue.get_nowait()
                if index in self._seen:
                    logger.warning("Discarding duplicate result for target #%d (%s)", index, result.target)
                    continue
                self._seen.add(index)
                self._results.append(result)
                accepted += 1
        except queue.Empty:
            pass
        return accepted

    def finalize(self, cancelled: bool = False) -> ResultSet:
        """
        Closes the channel and returns the immutable result set.

        Raises CardinalityError if a run that was not cancelled is missing results.
        """
        self._closed.set()
        self.drain()
        if not cancelled and len(self._results) != self.expected:
            raise CardinalityError(
                f"Expected {self.expected} results but collected {len(self._results)}."
            )
        return ResultSet(results=tuple(self._results), total=self.expected, cancelled=cancelled)
