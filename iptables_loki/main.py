"""iptables-loki entry point: tail the firewall log and ship it to Loki."""

import argparse
import logging
import os
import signal
import sys
import threading

from iptables_loki.config import load_config
from iptables_loki.errors import StartupError
from iptables_loki.geoip import GeoIpDatabases
from iptables_loki.pipeline import FirewallLogShipper
from iptables_loki.pusher import LokiPusher
from iptables_loki.rules import RuleFilter
from iptables_loki.tailer import Tailer

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iptables-loki",
        description="Ship iptables kernel log lines to Loki",
    )
    parser.add_argument(
        "-c", "--config", default=None,
        help="Path to the YAML config file (default: $CONFIG_PATH or /etc/iptables-loki/config.yml)",
    )
    parser.add_argument(
        "--log-level", type=str.upper, choices=LOG_LEVELS,
        default=os.environ.get("LOG_LEVEL", "INFO").upper(),
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    return parser


def run(config_path: str | None, shutdown_event: threading.Event):
    """Start every component and run the loop until shutdown.

    Raises:
        StartupError: If the config, a GeoIP database or the watcher fails.
    """
    config = load_config(config_path)
    logger.info("Config: log_file=%s, rules=%s, push_url=%s, batch_size=%d",
                config.log_file, list(config.firewall.rules),
                config.loki.push_url, config.loki.batch_size)

    geoip = GeoIpDatabases.open(config.geoip)
    pusher = LokiPusher(config.loki.push_url, timeout=config.loki.timeout)
    tailer = Tailer(
        config.log_file,
        shutdown_event,
        poll_interval=config.tail.poll_interval,
        wake_interval=config.tail.wake_interval,
        start_at_end=config.tail.start_at_end,
    )
    try:
        tailer.open()
        logger.info("Tailing %s", config.log_file)
        shipper = FirewallLogShipper(
            RuleFilter(config.firewall.rules),
            pusher,
            geoip=geoip,
            batch_size=config.loki.batch_size,
        )
        shipper.run(tailer.lines())
    finally:
        tailer.close()
        pusher.close()
        geoip.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_cli_parser()
    args = parser.parse_args(argv)
    # argparse does not check defaults against choices.
    if args.log_level not in LOG_LEVELS:
        parser.error(f"invalid LOG_LEVEL {args.log_level!r} (choose from {', '.join(LOG_LEVELS)})")

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s [IPTABLES-LOKI] %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run(args.config, shutdown_event)
    except StartupError as e:
        logger.error("%s", e)
        return 1

    logger.info("iptables-loki stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
