"""
Process-wide geolocation lookup.

Lifecycle: the MaxMind database is opened once, on first use, and never
reloaded for the life of the process. The reader is read-only, so the single
instance is shared by every request and worker coroutine. Handlers receive it
through the ``get_geo_lookup`` dependency instead of touching module state.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Any

import geoip2.database
import geoip2.errors

from leadflow.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoLocation:
    country: str | None
    region: str | None

    def to_dict(self) -> dict[str, str | None]:
        return {"country": self.country, "region": self.region}


UNKNOWN_LOCATION = GeoLocation(country=None, region=None)


class GeoLookup:
    """Country/region answers over an immutable geolocation database."""

    def __init__(self, reader: Any | None):
        self._reader = reader

    @property
    def available(self) -> bool:
        return self._reader is not None

    def lookup(self, ip: str | None) -> GeoLocation:
        """Resolve an IP to country/region. Unknown on any lookup failure."""
        if not ip or self._reader is None:
            return UNKNOWN_LOCATION
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            return UNKNOWN_LOCATION
        try:
            response = self._reader.city(ip)
        except geoip2.errors.AddressNotFoundError:
            return UNKNOWN_LOCATION
        except (ValueError, geoip2.errors.GeoIP2Error) as exc:
            logger.warning("Geo lookup failed: %s", type(exc).__name__)
            return UNKNOWN_LOCATION

        country = getattr(response.country, "iso_code", None)
        region = None
        subdivisions = getattr(response, "subdivisions", None)
        if subdivisions is not None:
            region = getattr(subdivisions.most_specific, "iso_code", None)
        return GeoLocation(country=country, region=region)


_geo_lookup: GeoLookup | None = None
_geo_lock = threading.Lock()


def init_geo_lookup(database_path: str | None = None) -> GeoLookup:
    """Open the geolocation database once. Later calls return the same instance."""
    global _geo_lookup
    with _geo_lock:
        if _geo_lookup is not None:
            return _geo_lookup

        path = database_path if database_path is not None else settings.GEOIP_DATABASE_PATH
        reader = None
        if path:
            try:
                reader = geoip2.database.Reader(path)
                logger.info("Geolocation database loaded")
            except (OSError, ValueError) as exc:
                logger.warning("Geolocation database unavailable: %s", exc)
        else:
            logger.warning("GEOIP_DATABASE_PATH not set - all lookups resolve to unknown")
        _geo_lookup = GeoLookup(reader)
        return _geo_lookup


def get_geo_lookup() -> GeoLookup:
    """FastAPI dependency returning the process-wide lookup."""
    return _geo_lookup or init_geo_lookup()
