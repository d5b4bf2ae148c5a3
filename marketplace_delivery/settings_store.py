"""Delivery rate and geofence settings.

Components receive a :class:`SettingsProvider` rather than reading files
themselves, so callers decide how settings are stored and cached.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from marketplace_delivery.errors import InvalidSettingError
from marketplace_delivery.geofence import validate_polygon_document
from marketplace_delivery.models import Polygon

load_dotenv()

logger = logging.getLogger(__name__)


class SettingsProvider(ABC):
    """Read/write access to the admin-managed delivery settings."""

    @abstractmethod
    def get_delivery_rate(self) -> int:
        """Return the delivery rate in cents per mile; 0 disables fees."""

    @abstractmethod
    def set_delivery_rate(self, rate_per_mile_cents: int) -> None:
        """Store a new delivery rate."""

    @abstractmethod
    def get_geofence(self) -> Polygon | None:
        """Return the service-area polygon, or None for no restriction."""

    @abstractmethod
    def set_geofence(self, geometry: dict | None) -> Polygon | None:
        """Validate and store a GeoJSON polygon, or clear it with None."""


def validate_rate(value) -> int:
    """Return *value* as a non-negative integer rate.

    Raises:
        InvalidSettingError: If the value is not a non-negative integer.
    """
    if isinstance(value, bool):
        raise InvalidSettingError("Invalid rate: must be a non-negative integer (cents per mile)")
    try:
        rate = int(value)
    except (TypeError, ValueError):
        raise InvalidSettingError("Invalid rate: must be a non-negative integer (cents per mile)") from None
    if rate < 0 or (isinstance(value, float) and rate != value):
        raise InvalidSettingError("Invalid rate: must be a non-negative integer (cents per mile)")
    return rate


def env_delivery_rate() -> int:
    """Return ``DELIVERY_RATE_PER_MILE_CENTS`` if it holds a positive integer, else 0."""
    try:
        rate = int(os.getenv("DELIVERY_RATE_PER_MILE_CENTS", ""))
    except ValueError:
        return 0
    return rate if rate > 0 else 0


class InMemorySettingsStore(SettingsProvider):
    """Settings held in process memory."""

    def __init__(self, rate_per_mile_cents: int = 0, geofence: dict | None = None):
        self._rate = validate_rate(rate_per_mile_cents)
        self._geofence = validate_polygon_document(geofence)

    def get_delivery_rate(self) -> int:
        return self._rate

    def set_delivery_rate(self, rate_per_mile_cents: int) -> None:
        self._rate = validate_rate(rate_per_mile_cents)

    def get_geofence(self) -> Polygon | None:
        return self._geofence

    def set_geofence(self, geometry: dict | None) -> Polygon | None:
        self._geofence = validate_polygon_document(geometry)
        return self._geofence


class JsonFileSettingsStore(SettingsProvider):
    """Settings persisted as JSON documents in a directory.

    Missing or unreadable files read as unset. When no positive rate is
    stored the ``DELIVERY_RATE_PER_MILE_CENTS`` environment variable is used.
    """

    DELIVERY_FILE = "delivery-settings.json"
    GEOFENCE_FILE = "geofence-settings.json"

    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or os.getenv("MARKETPLACE_SETTINGS_DIR", "data"))

    def _read(self, name: str) -> dict:
        path = self.directory / name
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, name: str, data: dict) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        data = {**data, "updatedAt": datetime.now(timezone.utc).isoformat()}
        with open(self.directory / name, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get_delivery_rate(self) -> int:
        rate = self._read(self.DELIVERY_FILE).get("deliveryRatePerMileCents")
        if isinstance(rate, int) and not isinstance(rate, bool) and rate > 0:
            return rate
        return env_delivery_rate()

    def set_delivery_rate(self, rate_per_mile_cents: int) -> None:
        rate = validate_rate(rate_per_mile_cents)
        self._write(self.DELIVERY_FILE, {"deliveryRatePerMileCents": rate})
        logger.info("Delivery rate set to %d cents per mile", rate)

    def get_geofence(self) -> Polygon | None:
        geometry = self._read(self.GEOFENCE_FILE).get("polygon")
        try:
            return validate_polygon_document(geometry)
        except InvalidSettingError as exc:
            logger.warning("Ignoring invalid stored geofence: %s", exc)
            return None

    def set_geofence(self, geometry: dict | None) -> Polygon | None:
        polygon = validate_polygon_document(geometry)
        self._write(self.GEOFENCE_FILE, {"polygon": polygon.to_geojson() if polygon else None})
        logger.info("Geofence %s", "cleared" if polygon is None else "updated")
        return polygon
