"""Mapbox forward geocoding client."""

import logging
import os
from urllib.parse import quote

import requests
from dotenv import load_dotenv

from marketplace_delivery.base_client import DEFAULT_TIMEOUT, Geocoder
from marketplace_delivery.errors import GeocodingError
from marketplace_delivery.models import Address, Coordinate

load_dotenv()

logger = logging.getLogger(__name__)

BASE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"


class MapboxGeocoder(Geocoder):
    """Geocoder backed by the Mapbox Geocoding API."""

    def __init__(
        self,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.access_token = access_token or os.getenv("MAPBOX_ACCESS_TOKEN", "")
        if not self.access_token:
            raise ValueError(
                "MAPBOX_ACCESS_TOKEN must be set either as an argument or in a .env file."
            )
        self.timeout = timeout
        self.session = requests.Session()

    def _get(self, query: str) -> dict:
        url = f"{BASE_URL}/{quote(query, safe='')}.json"
        params = {"access_token": self.access_token, "limit": 1}
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def geocode(self, address: Address) -> Coordinate:
        """Return the coordinate of the best Mapbox match for *address*.

        Raises:
            GeocodingError: On an empty query, a transport or HTTP error,
                an unparsable body, or no matching feature.
        """
        query = address.query
        if not query:
            raise GeocodingError("Empty address")

        try:
            data = self._get(query)
        except requests.RequestException as exc:
            raise GeocodingError(f"Geocoding request failed: {exc}") from exc
        except ValueError as exc:
            raise GeocodingError("Failed to parse geocoding response") from exc

        features = data.get("features") or []
        if not features:
            raise GeocodingError(f"No geocoding results found for {query!r}")

        # Mapbox returns [lng, lat].
        try:
            lng, lat = features[0]["center"][:2]
            coordinate = Coordinate.checked(lat, lng)
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(f"Malformed geocoding result for {query!r}") from exc
        logger.debug("Geocoded %r to %s, %s", query, coordinate.lat, coordinate.lng)
        return coordinate
