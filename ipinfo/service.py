"""
Lookup service

Validates input, queries the ASN and Geo slots and turns reader results
into response records. Also drives reloads: open the new file, swap it
in, retire the old handle.
"""

import ipaddress
import logging
from typing import Any, Dict, Optional

from .config import DEFAULT_LANG, Settings, normalize_language
from .db.reader import DatabaseReader, IPAddress
from .db.slot import DatabaseHandle, ResourceSlot
from .errors import (
    DatabaseLookupError,
    DatabaseOpenError,
    InvalidInputError,
    RecordNotFoundError,
    ReloadError,
)
from .metrics import prometheus_metrics
from .schemas import ASRecord, CombinedRecord, LocationRecord

logger = logging.getLogger("ipinfo.service")


def parse_ip(ip_text: str) -> IPAddress:
    try:
        return ipaddress.ip_address(ip_text)
    except ValueError:
        raise InvalidInputError(ip_text) from None


def _name(names: Optional[Dict[str, str]], lang: str) -> str:
    # No fallback to another language
    if not names:
        return ""
    return names.get(lang) or ""


class LookupService:
    def __init__(self, asn_slot: ResourceSlot, geo_slot: ResourceSlot,
                 language: str = DEFAULT_LANG,
                 asn_reader: Optional[DatabaseReader] = None,
                 geo_reader: Optional[DatabaseReader] = None,
                 asn_path: Optional[str] = None,
                 geo_path: Optional[str] = None):
        self.asn_slot = asn_slot
        self.geo_slot = geo_slot
        self.language = normalize_language(language)
        self.asn_reader = asn_reader or DatabaseReader("asn")
        self.geo_reader = geo_reader or DatabaseReader("city")
        self.asn_path = asn_path
        self.geo_path = geo_path

    # Queries

    def resolve_as(self, ip_text: str) -> ASRecord:
        ip = parse_ip(ip_text)
        data = self._query(self.asn_slot, self.asn_reader, ip)
        return ASRecord(
            number=data.autonomous_system_number or 0,
            name=data.autonomous_system_organization or "",
        )

    def resolve_location(self, ip_text: str) -> LocationRecord:
        ip = parse_ip(ip_text)
        geo = self._query(self.geo_slot, self.geo_reader, ip)
        return LocationRecord(
            continent=_name(geo.continent.names, self.language),
            continent_code=geo.continent.code or "",
            country=_name(geo.country.names, self.language),
            country_code=geo.country.iso_code or "",
            city=_name(geo.city.names, self.language),
        )

    def resolve_combined(self, ip_text: str) -> CombinedRecord:
        """AS and location for one address.

        An AS failure leaves the `as` part at its zero value; only a
        location failure fails the call. Location is treated as the
        primary answer.
        """
        try:
            as_record = self.resolve_as(ip_text)
        except (InvalidInputError, DatabaseLookupError) as e:
            logger.debug(f"AS part of combined lookup dropped: {e}", extra={
                "component": "service",
                "ip": ip_text,
            })
            as_record = ASRecord()
        location = self.resolve_location(ip_text)
        return CombinedRecord(as_=as_record, location=location)

    def _query(self, slot: ResourceSlot, reader: DatabaseReader, ip: IPAddress) -> Any:
        try:
            with slot.lease() as handle:
                result = reader.query(handle.resource, ip)
        except RecordNotFoundError:
            prometheus_metrics.increment_lookups(slot.name, "not_found")
            raise
        except DatabaseLookupError:
            prometheus_metrics.increment_lookups(slot.name, "error")
            raise
        prometheus_metrics.increment_lookups(slot.name, "ok")
        return result

    # Reloads

    def reload_asn(self, path: Optional[str] = None) -> DatabaseHandle:
        return self._reload(self.asn_slot, self.asn_reader, path or self.asn_path)

    def reload_geo(self, path: Optional[str] = None) -> DatabaseHandle:
        return self._reload(self.geo_slot, self.geo_reader, path or self.geo_path)

    def _reload(self, slot: ResourceSlot, reader: DatabaseReader,
                path: Optional[str]) -> DatabaseHandle:
        if not path:
            raise ReloadError(slot.name, "<unset>", "no database path configured")
        try:
            new = open_handle(reader, path)
        except DatabaseOpenError as e:
            prometheus_metrics.increment_reloads(slot.name, "error")
            logger.error(f"Failed to reload {slot.name} database: {e}", extra={
                "component": "service",
                "database": slot.name,
                "db_path": path,
            })
            raise ReloadError(slot.name, path, e.reason) from e

        try:
            old = slot.swap(new)
        except Exception:
            new.retire()
            raise
        old.retire()

        prometheus_metrics.increment_reloads(slot.name, "ok")
        prometheus_metrics.set_database_loaded(slot.name, True, new.loaded_at)
        logger.info(f"{slot.name} database reloaded", extra={
            "component": "service",
            "database": slot.name,
            "db_path": path,
            "generation": new.generation,
        })
        return new

    # Lifecycle

    def status(self) -> Dict[str, Any]:
        return {
            "asn": self._slot_status(self.asn_slot, self.asn_reader),
            "geo": self._slot_status(self.geo_slot, self.geo_reader),
        }

    def _slot_status(self, slot: ResourceSlot, reader: DatabaseReader) -> Dict[str, Any]:
        with slot.lease() as handle:
            info = {
                "path": handle.path,
                "loaded_at": handle.loaded_at,
                "generation": handle.generation,
            }
            info.update(reader.describe(handle.resource))
        return info

    def close(self) -> None:
        for slot in (self.asn_slot, self.geo_slot):
            slot.close()
            prometheus_metrics.set_database_loaded(slot.name, False)


def open_handle(reader: DatabaseReader, path: str) -> DatabaseHandle:
    resource = reader.open(path)
    return DatabaseHandle(resource, path, on_close=reader.close)


def open_service(settings: Settings,
                 asn_reader: Optional[DatabaseReader] = None,
                 geo_reader: Optional[DatabaseReader] = None) -> LookupService:
    """Open both databases; any open failure propagates to the caller"""
    asn_reader = asn_reader or DatabaseReader("asn")
    geo_reader = geo_reader or DatabaseReader("city")

    asn_handle = open_handle(asn_reader, settings.asn_db)
    try:
        geo_handle = open_handle(geo_reader, settings.geo_db)
    except DatabaseOpenError:
        asn_handle.retire()
        raise

    service = LookupService(
        ResourceSlot("asn", asn_handle),
        ResourceSlot("geo", geo_handle),
        language=settings.lang,
        asn_reader=asn_reader,
        geo_reader=geo_reader,
        asn_path=settings.asn_db,
        geo_path=settings.geo_db,
    )
    for slot in (service.asn_slot, service.geo_slot):
        prometheus_metrics.set_database_loaded(slot.name, True, slot.get().loaded_at)
    logger.info("databases loaded", extra={
        "component": "service",
        "asn_db": settings.asn_db,
        "geo_db": settings.geo_db,
        "language": service.language,
    })
    return service
