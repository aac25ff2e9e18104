"""Render a parsed firewall line plus its GeoIP data as one logfmt line."""

import ipaddress
from dataclasses import astuple, dataclass, fields

from iptables_loki.errors import EntryError
from iptables_loki.models import GeoInfo, ParsedLine


@dataclass(frozen=True)
class FirewallEntry:
    """One shippable firewall event. Field order is the rendered order."""

    hostname: str
    rule: str
    interface: str
    mac: str
    src: str
    src_port: int | None
    dst: str
    dst_port: int | None
    proto: str
    asn: int | None
    asn_org: str | None
    city: str | None
    country_code: str | None
    country: str | None
    lat: float | None
    lng: float | None

    @classmethod
    def from_parsed(cls, parsed: ParsedLine, geo: GeoInfo) -> "FirewallEntry":
        values = parsed.fields
        return cls(
            hostname=parsed.hostname,
            rule=parsed.rule,
            interface=values.get("IN", ""),
            mac=values.get("MAC", ""),
            src=_ip(values.get("SRC", ""), "SRC"),
            src_port=_port(values.get("SPT", ""), "SPT"),
            dst=_ip(values.get("DST", ""), "DST"),
            dst_port=_port(values.get("DPT", ""), "DPT"),
            proto=values.get("PROTO", ""),
            asn=geo.asn,
            asn_org=geo.asn_org,
            city=geo.city,
            country_code=geo.country_code,
            country=geo.country,
            lat=geo.lat,
            lng=geo.lng,
        )

    def __str__(self) -> str:
        return " ".join(
            f'{f.name}="{_format_value(value)}"'
            for f, value in zip(fields(self), astuple(self))
        )


def _ip(value: str, key: str) -> str:
    """Normalize an address; an absent value stays empty."""
    if not value:
        return ""
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise EntryError(f"Malformed {key} address {value!r}") from None


def _port(value: str, key: str) -> int | None:
    if not value:
        return None
    if not value.isascii() or not value.isdigit() or int(value) > 65535:
        raise EntryError(f"Malformed {key} port {value!r}")
    return int(value)


def _format_value(value) -> str:
    """Absent values render empty; 0 and 0.0 both render as "0"."""
    if value is None:
        return ""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def render(parsed: ParsedLine, geo: GeoInfo) -> str:
    """Format *parsed* and *geo* as ``key="value"`` pairs in a fixed order.

    Raises EntryError if an address or port in the line is malformed.
    """
    return str(FirewallEntry.from_parsed(parsed, geo))
