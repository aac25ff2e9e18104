"""The serial shipping loop: parse, filter, enrich, render, batch, push."""

import ipaddress
import logging
from collections.abc import Iterable

from iptables_loki.batch import BatchAccumulator
from iptables_loki.encoder import PushEncoder
from iptables_loki.errors import EncodeError, EntryError
from iptables_loki.geoip import GeoIpDatabases
from iptables_loki.metrics import PipelineMetrics
from iptables_loki.models import RenderedEntry
from iptables_loki.parser import parse_log_line
from iptables_loki.render import render
from iptables_loki.rules import RuleFilter

logger = logging.getLogger(__name__)


class FirewallLogShipper:
    """Processes one line at a time; a full batch is pushed before the next read."""

    def __init__(
        self,
        rule_filter: RuleFilter,
        pusher,
        geoip: GeoIpDatabases | None = None,
        batch_size: int = 8,
        encoder: PushEncoder | None = None,
    ):
        self._filter = rule_filter
        self._pusher = pusher
        self._geoip = geoip or GeoIpDatabases()
        self._encoder = encoder or PushEncoder()
        self._metrics = PipelineMetrics()
        self._batch = BatchAccumulator(batch_size, self._handle_batch)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    @property
    def pending_count(self) -> int:
        return self._batch.pending_count

    def run(self, lines: Iterable[str]):
        """Consume *lines* until the iterable ends."""
        for raw in lines:
            self.process_line(raw)

        if self._batch.pending_count:
            logger.info("Discarding %d buffered entries on shutdown", self._batch.pending_count)
        logger.info("Shipper stats: %s", self._metrics.snapshot())

    def process_line(self, raw: str) -> bool:
        """Run one raw line through the pipeline. Returns True if it was batched."""
        self._metrics.lines_read += 1

        parsed = parse_log_line(raw)
        if parsed is None:
            self._metrics.parse_failures += 1
            return False

        if not self._filter.accepts(parsed):
            logger.debug("Non-matching firewall rule: %s", parsed.rule)
            self._metrics.rule_misses += 1
            return False

        src = parsed.fields.get("SRC")
        if src is None:
            logger.debug("No SRC field in %s line", parsed.rule)
            self._metrics.entry_errors += 1
            return False
        try:
            ipaddress.ip_address(src)
        except ValueError:
            logger.warning("Malformed src ip in iptables logs %s", src)
            self._metrics.entry_errors += 1
            return False

        geo = self._geoip.enrich(src)
        try:
            line = render(parsed, geo)
        except EntryError as e:
            logger.warning("Failed to build firewall entry for log: %s", e)
            self._metrics.entry_errors += 1
            return False

        self._metrics.entries_accepted += 1
        self._batch.push(int(parsed.time.timestamp()), line)
        return True

    def _handle_batch(self, batch: list[RenderedEntry]):
        """Encode and push a full batch. Failures drop the batch."""
        try:
            payload = self._encoder.encode(batch)
        except EncodeError as e:
            logger.error("Error creating a Loki push request: %s", e)
            self._metrics.record_batch(len(batch), success=False)
            return

        ok = self._pusher.push(payload)
        self._metrics.record_batch(len(batch), success=ok)
        if ok:
            logger.debug("Pushed batch of %d entries (%d bytes)", len(batch), len(payload))
        logger.debug("Shipper stats: %s", self._metrics.snapshot())
