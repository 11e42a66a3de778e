"""
MaxMind DB reader adapter

Keeps geoip2/maxminddb specifics out of the lookup core. One adapter per
database kind ("asn" or "city"); the core only sees open/query/close.
"""

import logging
from ipaddress import IPv4Address, IPv6Address
from typing import Any, Dict, Union

import geoip2.database
import geoip2.errors
import maxminddb
from maxminddb import MODE_MEMORY

from ..errors import DatabaseOpenError, MalformedHandleError, RecordNotFoundError

logger = logging.getLogger("ipinfo.db")

IPAddress = Union[IPv4Address, IPv6Address]

# Substring geoip2 itself matches against metadata.database_type
_DATABASE_TYPES = {
    "asn": "ASN",
    "city": "City",
}


class DatabaseReader:
    """Opens, queries and closes one kind of MaxMind database"""

    def __init__(self, kind: str, mode: int = MODE_MEMORY):
        if kind not in _DATABASE_TYPES:
            raise ValueError(f"unsupported database kind: {kind}")
        self.kind = kind
        self.mode = mode

    @property
    def database(self) -> str:
        return "asn" if self.kind == "asn" else "geo"

    def open(self, path: str) -> geoip2.database.Reader:
        """Open `path`; the returned reader is fully loaded or an error is raised"""
        try:
            handle = geoip2.database.Reader(path, mode=self.mode)
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise DatabaseOpenError(self.database, path, str(e)) from e
        except (TypeError, KeyError) as e:
            # Metadata marker present but the metadata map is incomplete
            raise DatabaseOpenError(self.database, path, f"invalid database metadata: {e}") from e

        database_type = handle.metadata().database_type
        if _DATABASE_TYPES[self.kind] not in database_type:
            handle.close()
            raise DatabaseOpenError(
                self.database, path,
                f"expected a {_DATABASE_TYPES[self.kind]} database, got {database_type}",
            )

        logger.debug("database opened", extra={
            "component": "db",
            "database": self.database,
            "db_path": path,
            "database_type": database_type,
        })
        return handle

    def query(self, handle: geoip2.database.Reader, ip: IPAddress) -> Any:
        try:
            if self.kind == "asn":
                return handle.asn(ip)
            return handle.city(ip)
        except geoip2.errors.AddressNotFoundError as e:
            raise RecordNotFoundError(self.database, str(ip), str(e)) from e
        except (TypeError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise MalformedHandleError(self.database, str(ip), str(e)) from e

    def close(self, handle: geoip2.database.Reader) -> None:
        handle.close()

    def describe(self, handle: geoip2.database.Reader) -> Dict[str, Any]:
        meta = handle.metadata()
        return {
            "database_type": meta.database_type,
            "build_epoch": meta.build_epoch,
            "ip_version": meta.ip_version,
            "node_count": meta.node_count,
            "languages": list(meta.languages),
        }
