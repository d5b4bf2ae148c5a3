"""Service-area checks against the configured geofence polygon."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from marketplace_delivery.base_client import Geocoder
from marketplace_delivery.errors import GeocodingError, InvalidSettingError
from marketplace_delivery.geo import point_in_polygon
from marketplace_delivery.models import Address, Polygon

if TYPE_CHECKING:
    from marketplace_delivery.settings_store import SettingsProvider

logger = logging.getLogger(__name__)

GEOCODING_FAILED = "geocoding_failed"


def validate_polygon_document(geometry: dict | None) -> Polygon | None:
    """Validate a GeoJSON Polygon geometry and convert it.

    None clears the geofence and is returned unchanged.

    Raises:
        InvalidSettingError: If *geometry* is not a Polygon whose closed outer
            ring has at least four in-range ``[lng, lat]`` positions.
    """
    if geometry is None:
        return None

    message = "Invalid polygon: must be a GeoJSON Polygon with at least 4 coordinates"
    if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
        raise InvalidSettingError(message)
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list) or not coordinates or not isinstance(coordinates[0], list):
        raise InvalidSettingError(message)
    if len(coordinates[0]) < Polygon.MIN_RING_LENGTH:
        raise InvalidSettingError(message)

    try:
        polygon = Polygon.from_geojson(geometry)
    except (IndexError, TypeError, ValueError):
        raise InvalidSettingError(message) from None
    if polygon.ring[0] != polygon.ring[-1]:
        raise InvalidSettingError("Invalid polygon: the first and last coordinates must be the same")
    return polygon


@dataclass(frozen=True)
class GeofenceDecision:
    valid: bool
    reason: str | None = None

    def as_response(self) -> dict:
        if self.reason:
            return {"valid": self.valid, "reason": self.reason}
        return {"valid": self.valid}


class GeofenceGate:
    """Decides whether an address lies inside the service area.

    Addresses that cannot be geocoded are rejected.
    """

    def __init__(self, settings: "SettingsProvider", geocoder: Geocoder | None):
        self.settings = settings
        self.geocoder = geocoder

    def is_address_allowed(self, address: Address) -> GeofenceDecision:
        polygon = self.settings.get_geofence()
        if polygon is None:
            return GeofenceDecision(valid=True)

        if self.geocoder is None:
            logger.warning("Geofence is set but no geocoder is configured; rejecting %r", address.query)
            return GeofenceDecision(valid=False, reason=GEOCODING_FAILED)

        try:
            coordinate = self.geocoder.geocode(address)
        except GeocodingError as exc:
            logger.info("Rejecting unverifiable address %r: %s", address.query, exc)
            return GeofenceDecision(valid=False, reason=GEOCODING_FAILED)

        return GeofenceDecision(valid=point_in_polygon(coordinate, polygon))
