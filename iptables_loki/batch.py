"""Batch accumulator: collects rendered entries and flushes at a fixed size.

There is no time-based flush: a slow trickle of matching lines
can hold a partial batch indefinitely, and a partial batch is lost when the
process is terminated.
"""

import logging
from collections.abc import Callable

from iptables_loki.models import RenderedEntry

logger = logging.getLogger(__name__)


class BatchAccumulator:
    """Collects entries and hands each full batch to *on_full* exactly once.

    The buffer is reset before the callback runs, so the accumulator is
    empty while the batch is being encoded and pushed.
    """

    def __init__(self, capacity: int, on_full: Callable[[list[RenderedEntry]], None]):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._on_full = on_full
        self._buffer: list[RenderedEntry] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending_count(self) -> int:
        """Number of entries waiting for the batch to fill."""
        return len(self._buffer)

    def push(self, timestamp: int, line: str):
        self._buffer.append(RenderedEntry(timestamp, line))
        if len(self._buffer) < self._capacity:
            return

        batch = self._buffer
        self._buffer = []
        self._safe_flush(batch)

    def _safe_flush(self, batch: list[RenderedEntry]):
        """Invoke on_full so that a failing callback never breaks the loop."""
        try:
            self._on_full(batch)
            logger.debug("Flushed batch of %d entries", len(batch))
        except Exception:
            logger.exception("on_full callback failed for batch of %d entries", len(batch))
