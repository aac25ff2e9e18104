"""GeoIP enrichment from MaxMind ASN, City and Country databases.

Every database is optional. A missing database, an address that is not in
a database, or a failing lookup all leave the corresponding GeoInfo fields
empty; none of them is an error for the pipeline.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import geoip2.database
import geoip2.errors
import maxminddb

from iptables_loki.config import GeoIpConfig
from iptables_loki.errors import GeoIpError
from iptables_loki.models import GeoInfo

logger = logging.getLogger(__name__)


class Lookup(Protocol):
    def lookup(self, ip: str) -> Any | None: ...


class GeoLookup:
    """Adapts a geoip2 Reader to ``lookup(ip) -> record | None``.

    *kind* names the Reader method to call: "asn", "city" or "country".
    """

    def __init__(self, reader, kind: str):
        if kind not in ("asn", "city", "country"):
            raise ValueError(f"Unsupported GeoIP database kind: {kind}")
        self._reader = reader
        self._kind = kind

    @property
    def kind(self) -> str:
        return self._kind

    def lookup(self, ip: str):
        try:
            return getattr(self._reader, self._kind)(ip)
        except geoip2.errors.AddressNotFoundError:
            return None

    def close(self):
        self._reader.close()


@dataclass
class GeoIpDatabases:
    asn: GeoLookup | None = None
    city: GeoLookup | None = None
    country: GeoLookup | None = None

    @classmethod
    def open(cls, config: GeoIpConfig) -> "GeoIpDatabases":
        """Open every configured database. Raises GeoIpError on the first failure."""
        dbs = cls()
        try:
            dbs.asn = _open_lookup(config.asn_db, "asn")
            dbs.city = _open_lookup(config.city_db, "city")
            dbs.country = _open_lookup(config.country_db, "country")
        except GeoIpError:
            dbs.close()
            raise
        return dbs

    def enrich(self, src_ip: str) -> GeoInfo:
        return enrich(src_ip, self.asn, self.city, self.country)

    def close(self):
        for db in (self.asn, self.city, self.country):
            if db is not None:
                db.close()


def _open_lookup(path: str | None, kind: str) -> GeoLookup | None:
    if not path:
        return None
    try:
        reader = geoip2.database.Reader(path)
    except (OSError, ValueError, maxminddb.InvalidDatabaseError) as exc:
        raise GeoIpError(f"Failed to load GeoIP DB '{path}': {exc}") from exc
    logger.info("Loaded GeoIP %s database: %s", kind, path)
    return GeoLookup(reader, kind)


def _safe_lookup(source: Lookup | None, ip: str):
    if source is None:
        return None
    try:
        return source.lookup(ip)
    except Exception as e:
        logger.debug("GeoIP lookup for %s failed: %s", ip, e)
        return None


def pick_name(names: dict[str, str] | None) -> str | None:
    """Prefer the English name, otherwise any localized name."""
    if not names:
        return None
    if "en" in names:
        return names["en"]
    return next(iter(names.values()))


def enrich(src_ip: str, asn_lookup: Lookup | None = None,
           city_lookup: Lookup | None = None,
           country_lookup: Lookup | None = None) -> GeoInfo:
    """Query up to three GeoIP sources for *src_ip* and merge the results."""
    asn = _safe_lookup(asn_lookup, src_ip)
    city = _safe_lookup(city_lookup, src_ip)
    country = _safe_lookup(country_lookup, src_ip)

    city_record = getattr(city, "city", None)
    location = getattr(city, "location", None)
    country_record = getattr(country, "country", None)

    return GeoInfo(
        asn=getattr(asn, "autonomous_system_number", None),
        asn_org=getattr(asn, "autonomous_system_organization", None),
        city=pick_name(getattr(city_record, "names", None)),
        country_code=getattr(country_record, "iso_code", None),
        country=pick_name(getattr(country_record, "names", None)),
        lat=getattr(location, "latitude", None),
        lng=getattr(location, "longitude", None),
    )
