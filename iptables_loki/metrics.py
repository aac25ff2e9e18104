"""Counters for the shipping loop."""

from dataclasses import asdict, dataclass


@dataclass
class PipelineMetrics:
    lines_read: int = 0
    parse_failures: int = 0
    rule_misses: int = 0
    entry_errors: int = 0
    entries_accepted: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    entries_dropped: int = 0

    def record_batch(self, size: int, success: bool):
        if success:
            self.batches_sent += 1
        else:
            self.batches_failed += 1
            self.entries_dropped += size

    def snapshot(self) -> dict:
        return asdict(self)
