"""Data types passed between the pipeline stages."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import NamedTuple


@dataclass(frozen=True)
class ParsedLine:
    hostname: str
    time: datetime  # UTC; the year is inferred at parse time
    rule: str
    fields: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GeoInfo:
    asn: int | None = None
    asn_org: str | None = None
    city: str | None = None
    country_code: str | None = None
    country: str | None = None
    lat: float | None = None
    lng: float | None = None


class RenderedEntry(NamedTuple):
    timestamp: int
    line: str
