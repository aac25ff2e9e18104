"""Configuration loading from a YAML file with environment variable overrides.

Example::

    log-file: /var/log/messages
    geoip:
      asn-db: /usr/share/GeoIP/GeoLite2-ASN.mmdb
      city-db: /usr/share/GeoIP/GeoLite2-City.mmdb
    firewall:
      rules: [OUTSIDE-LOCAL-default-D, WAN-IN-V6-default-D]
    loki:
      push-url: http://loki:3100/loki/api/v1/push
"""

import logging
import os
from dataclasses import dataclass, field

import yaml

from iptables_loki.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/iptables-loki/config.yml"


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class GeoIpConfig:
    asn_db: str | None = None
    city_db: str | None = None
    country_db: str | None = None


@dataclass(frozen=True)
class FirewallConfig:
    rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class LokiConfig:
    push_url: str = ""
    timeout: float = 10.0
    batch_size: int = 8


@dataclass(frozen=True)
class TailConfig:
    poll_interval: float = 1.0
    wake_interval: float = 5.0
    start_at_end: bool = False


@dataclass(frozen=True)
class Config:
    log_file: str = "/var/log/messages"
    geoip: GeoIpConfig = field(default_factory=GeoIpConfig)
    firewall: FirewallConfig = field(default_factory=FirewallConfig)
    loki: LokiConfig = field(default_factory=LokiConfig)
    tail: TailConfig = field(default_factory=TailConfig)


def load_yaml_config(path: str) -> dict:
    """Read the YAML file at *path*. Raises ConfigError if it is unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _optional_str(section: dict, key: str, name: str) -> str | None:
    value = section.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"'{name}' must be a string")
    return value


def build_config(data: dict) -> Config:
    """Build a Config from parsed YAML data, applying env var overrides."""
    geoip = _section(data, "geoip")
    firewall = _section(data, "firewall")
    loki = _section(data, "loki")
    tail = _section(data, "tail")

    rules = firewall.get("rules") or []
    if not isinstance(rules, (list, tuple)) or not all(isinstance(r, str) for r in rules):
        raise ConfigError("'firewall.rules' must be a list of rule names")

    log_file = _optional_str(data, "log-file", "log-file") or Config.log_file
    push_url = _optional_str(loki, "push-url", "loki.push-url") or ""

    try:
        config = Config(
            log_file=os.environ.get("LOG_FILE", log_file),
            geoip=GeoIpConfig(
                asn_db=_optional_str(geoip, "asn-db", "geoip.asn-db"),
                city_db=_optional_str(geoip, "city-db", "geoip.city-db"),
                country_db=_optional_str(geoip, "country-db", "geoip.country-db"),
            ),
            firewall=FirewallConfig(rules=tuple(rules)),
            loki=LokiConfig(
                push_url=os.environ.get("LOKI_PUSH_URL", push_url),
                timeout=float(loki.get("timeout", LokiConfig.timeout)),
                batch_size=int(os.environ.get("BATCH_SIZE", loki.get("batch-size", LokiConfig.batch_size))),
            ),
            tail=TailConfig(
                poll_interval=float(tail.get("poll-interval", TailConfig.poll_interval)),
                wake_interval=float(tail.get("wake-interval", TailConfig.wake_interval)),
                start_at_end=_parse_bool(tail.get("start-at-end", TailConfig.start_at_end)),
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    if not config.loki.push_url:
        raise ConfigError("'loki.push-url' is required")
    if config.loki.batch_size < 1:
        raise ConfigError("'loki.batch-size' must be at least 1")
    if not config.firewall.rules:
        logger.warning("No firewall rules configured, every line will be dropped")
    return config


def load_config(path: str | None = None) -> Config:
    """Load the config file; ``CONFIG_PATH`` overrides the default location."""
    if path is None:
        path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    return build_config(load_yaml_config(path))
