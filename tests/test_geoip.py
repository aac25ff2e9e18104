"""Tests for GeoIP enrichment."""

from types import SimpleNamespace

import geoip2.errors
import pytest

from iptables_loki.config import GeoIpConfig
from iptables_loki.errors import GeoIpError
from iptables_loki.geoip import GeoIpDatabases, GeoLookup, enrich, pick_name
from iptables_loki.models import GeoInfo

IP = "125.166.96.62"


class FakeLookup:
    """Returns *record* for every address, or raises *error*."""

    def __init__(self, record=None, error=None):
        self._record = record
        self._error = error
        self.calls: list[str] = []

    def lookup(self, ip):
        self.calls.append(ip)
        if self._error:
            raise self._error
        return self._record


def _asn_record():
    return SimpleNamespace(
        autonomous_system_number=7713,
        autonomous_system_organization="PT Telekomunikasi Indonesia",
    )


def _city_record(names=None):
    return SimpleNamespace(
        city=SimpleNamespace(names={"en": "Jakarta", "de": "Djakarta"} if names is None else names),
        location=SimpleNamespace(latitude=-6.1728, longitude=106.8272),
    )


def _country_record(names=None):
    return SimpleNamespace(
        country=SimpleNamespace(
            iso_code="ID",
            names={"en": "Indonesia", "fr": "Indonésie"} if names is None else names,
        ),
    )


class TestPickName:
    def test_prefers_english(self):
        assert pick_name({"de": "Deutschland", "en": "Germany"}) == "Germany"

    def test_falls_back_to_any_name(self):
        assert pick_name({"de": "Deutschland"}) == "Deutschland"

    def test_empty(self):
        assert pick_name({}) is None
        assert pick_name(None) is None


class TestEnrich:
    def test_no_sources(self):
        assert enrich(IP) == GeoInfo()

    def test_all_sources(self):
        geo = enrich(
            IP,
            asn_lookup=FakeLookup(_asn_record()),
            city_lookup=FakeLookup(_city_record()),
            country_lookup=FakeLookup(_country_record()),
        )
        assert geo == GeoInfo(
            asn=7713,
            asn_org="PT Telekomunikasi Indonesia",
            city="Jakarta",
            country_code="ID",
            country="Indonesia",
            lat=-6.1728,
            lng=106.8272,
        )

    def test_sources_queried_with_ip(self):
        asn = FakeLookup(_asn_record())
        enrich(IP, asn_lookup=asn)
        assert asn.calls == [IP]

    def test_non_english_name_fallback(self):
        geo = enrich(IP, city_lookup=FakeLookup(_city_record(names={"ja": "ジャカルタ"})))
        assert geo.city == "ジャカルタ"

    def test_no_match_leaves_fields_empty(self):
        geo = enrich(IP, asn_lookup=FakeLookup(None), city_lookup=FakeLookup(_city_record()))
        assert geo.asn is None
        assert geo.asn_org is None
        assert geo.city == "Jakarta"

    def test_failing_lookup_treated_as_absent(self):
        geo = enrich(
            IP,
            asn_lookup=FakeLookup(error=ValueError("corrupt database")),
            country_lookup=FakeLookup(_country_record()),
        )
        assert geo.asn is None
        assert geo.country_code == "ID"

    def test_adding_sources_never_removes_fields(self):
        sources = {
            "asn_lookup": FakeLookup(_asn_record()),
            "city_lookup": FakeLookup(_city_record()),
            "country_lookup": FakeLookup(_country_record()),
        }
        previous = enrich(IP)
        enabled = {}
        for name, source in sources.items():
            enabled[name] = source
            current = enrich(IP, **enabled)
            for field, value in vars(previous).items():
                if value is not None:
                    assert getattr(current, field) == value
            previous = current


class FakeReader:
    def __init__(self):
        self.closed = False

    def asn(self, ip):
        if ip == "10.0.0.1":
            raise geoip2.errors.AddressNotFoundError("The address 10.0.0.1 is not in the database.")
        return _asn_record()

    def close(self):
        self.closed = True


class TestGeoLookup:
    def test_returns_record(self):
        assert GeoLookup(FakeReader(), "asn").lookup(IP).autonomous_system_number == 7713

    def test_address_not_found_is_none(self):
        assert GeoLookup(FakeReader(), "asn").lookup("10.0.0.1") is None

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            GeoLookup(FakeReader(), "isp")

    def test_close(self):
        reader = FakeReader()
        GeoLookup(reader, "asn").close()
        assert reader.closed


class TestGeoIpDatabases:
    def test_nothing_configured(self):
        dbs = GeoIpDatabases.open(GeoIpConfig())
        assert dbs.asn is None and dbs.city is None and dbs.country is None
        assert dbs.enrich(IP) == GeoInfo()

    def test_missing_database_is_fatal(self, tmp_path):
        with pytest.raises(GeoIpError, match="GeoIP DB"):
            GeoIpDatabases.open(GeoIpConfig(asn_db=str(tmp_path / "missing.mmdb")))

    def test_invalid_database_is_fatal(self, tmp_path):
        bogus = tmp_path / "bogus.mmdb"
        bogus.write_bytes(b"not a maxmind database")
        with pytest.raises(GeoIpError):
            GeoIpDatabases.open(GeoIpConfig(city_db=str(bogus)))
