# tests/conftest.py
import threading
import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from ipinfo.config import Settings
from ipinfo.db.slot import ResourceSlot
from ipinfo.errors import DatabaseOpenError, MalformedHandleError, RecordNotFoundError
from ipinfo.main import create_app
from ipinfo.service import LookupService, open_handle


def as_record(number, org):
    return SimpleNamespace(autonomous_system_number=number, autonomous_system_organization=org)


def city_record(continent, continent_code, country, country_code, city):
    # Name arguments are {lang: name} dicts, like geoip2's `names`
    return SimpleNamespace(
        continent=SimpleNamespace(names=continent, code=continent_code),
        country=SimpleNamespace(names=country, iso_code=country_code),
        city=SimpleNamespace(names=city),
    )


MOUNTAIN_VIEW = city_record(
    {"en": "North America", "de": "Nordamerika"}, "NA",
    {"en": "United States", "de": "Vereinigte Staaten"}, "US",
    {"en": "Mountain View"},
)

DATABASES = {
    "asn-v1.mmdb": {
        "8.8.8.8": as_record(15169, "Google LLC"),
        "1.1.1.1": as_record(13335, "Cloudflare, Inc."),
        "2001:4860:4860::8888": as_record(15169, "Google LLC"),
    },
    "asn-v2.mmdb": {
        "8.8.8.8": as_record(15169, "Google LLC v2"),
    },
    "city-v1.mmdb": {
        "8.8.8.8": MOUNTAIN_VIEW,
        "9.9.9.9": city_record({"en": "Europe"}, "EU", {"en": "Switzerland"}, "CH", {}),
        "2001:4860:4860::8888": MOUNTAIN_VIEW,
    },
    "city-v2.mmdb": {
        "8.8.8.8": city_record({"en": "North America"}, "NA", {"en": "United States"}, "US",
                               {"en": "Sunnyvale"}),
    },
}


class FakeDatabase:
    """In-memory stand-in for an opened geoip2 reader"""

    def __init__(self, path, records):
        self.path = path
        self.records = records
        self.closed = False
        self.close_calls = 0


class FakeReader:
    """DatabaseReader double serving the fixture databases above"""

    def __init__(self, kind, databases=None, query_delay=0.0):
        self.kind = kind
        self.databases = DATABASES if databases is None else databases
        self.query_delay = query_delay
        self.opened = []
        self.queries = 0
        self._lock = threading.Lock()

    @property
    def database(self):
        return "asn" if self.kind == "asn" else "geo"

    def open(self, path):
        if path not in self.databases:
            raise DatabaseOpenError(self.database, path, "No such file or directory")
        handle = FakeDatabase(path, self.databases[path])
        self.opened.append(handle)
        return handle

    def query(self, handle, ip):
        with self._lock:
            self.queries += 1
        if handle.closed:
            raise MalformedHandleError(self.database, str(ip), "Attempt to read from a closed MaxMind DB.")
        if self.query_delay:
            time.sleep(self.query_delay)
            if handle.closed:
                raise MalformedHandleError(self.database, str(ip), "database closed mid-query")
        try:
            return handle.records[str(ip)]
        except KeyError:
            raise RecordNotFoundError(
                self.database, str(ip), f"The address {ip} is not in the database."
            ) from None

    def close(self, handle):
        handle.close_calls += 1
        handle.closed = True

    def describe(self, handle):
        return {
            "database_type": "GeoLite2-ASN" if self.kind == "asn" else "GeoLite2-City",
            "build_epoch": 1622505600,
            "ip_version": 6,
            "node_count": len(handle.records),
            "languages": ["en", "de"],
        }


@pytest.fixture
def asn_reader():
    return FakeReader("asn")


@pytest.fixture
def geo_reader():
    return FakeReader("city")


@pytest.fixture
def settings():
    return Settings(addr=":0", mode="test", asn_db="asn-v1.mmdb", geo_db="city-v1.mmdb", lang="en")


def build_service(asn_reader, geo_reader, language="en"):
    return LookupService(
        ResourceSlot("asn", open_handle(asn_reader, "asn-v1.mmdb")),
        ResourceSlot("geo", open_handle(geo_reader, "city-v1.mmdb")),
        language=language,
        asn_reader=asn_reader,
        geo_reader=geo_reader,
        asn_path="asn-v1.mmdb",
        geo_path="city-v1.mmdb",
    )


@pytest.fixture
def service(asn_reader, geo_reader):
    return build_service(asn_reader, geo_reader)


@pytest.fixture
def client(settings, service):
    with TestClient(create_app(settings, service=service)) as test_client:
        yield test_client
