"""Shared data models for delivery estimation and cart checkout."""

import math
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    @classmethod
    def checked(cls, lat: float, lng: float) -> "Coordinate":
        """Build a coordinate, rejecting values outside the valid ranges.

        Raises:
            ValueError: If either value is not finite or out of range.
        """
        lat = float(lat)
        lng = float(lng)
        if not (math.isfinite(lat) and -90.0 <= lat <= 90.0):
            raise ValueError(f"Latitude {lat} out of range [-90, 90]")
        if not (math.isfinite(lng) and -180.0 <= lng <= 180.0):
            raise ValueError(f"Longitude {lng} out of range [-180, 180]")
        return cls(lat=lat, lng=lng)

    @classmethod
    def from_mapping(cls, data: dict | None) -> "Coordinate | None":
        """Return a coordinate from a ``{"lat": .., "lng": ..}`` dict, or None.

        Missing, null or zero values count as absent, matching how the
        marketplace reports an unset geolocation.
        """
        if not data:
            return None
        lat = data.get("lat")
        lng = data.get("lng")
        if not lat or not lng:
            return None
        try:
            return cls.checked(lat, lng)
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class Address:
    """A postal address used for geocoding and delivery."""

    line1: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    @property
    def query(self) -> str:
        parts = [self.line1, self.city, self.state, self.postal_code, self.country]
        return ", ".join(p for p in parts if p)

    @classmethod
    def from_mapping(cls, data: dict) -> "Address":
        """Build an address from the marketplace's camelCase address dicts.

        Accepts both the shipping address shape (``line1``/``addressLine1``,
        ``postalCode``) and the seller profile shape (``street``, ``zip``).
        Non-string values such as a numeric zip code are converted to text.
        """

        def text(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value is not None and value != "":
                    return str(value).strip()
            return ""

        return cls(
            line1=text("line1", "addressLine1", "street"),
            city=text("city"),
            state=text("state"),
            postal_code=text("postalCode", "zip"),
            country=text("country"),
        )


@dataclass(frozen=True)
class Polygon:
    """A closed outer ring of coordinates. Holes are not modelled."""

    ring: tuple[Coordinate, ...]

    MIN_RING_LENGTH = 4

    @property
    def is_degenerate(self) -> bool:
        return len(self.ring) < self.MIN_RING_LENGTH

    @classmethod
    def from_geojson(cls, geometry: dict) -> "Polygon":
        """Build a polygon from a GeoJSON Polygon geometry.

        GeoJSON positions are ``[lng, lat]``; only the first ring is read.

        Raises:
            ValueError: If a position is out of range or not a number.
        """
        rings = geometry.get("coordinates") or [[]]
        return cls(ring=tuple(Coordinate.checked(p[1], p[0]) for p in rings[0]))

    def to_geojson(self) -> dict:
        return {
            "type": "Polygon",
            "coordinates": [[[c.lng, c.lat] for c in self.ring]],
        }


class LocationSource(str, Enum):
    """Where a seller location was resolved from."""

    LISTING_GEOLOCATION = "listing_geolocation"
    SELLER_ADDRESS_COORDINATES = "seller_address_coordinates"
    SELLER_ADDRESS_TEXT = "seller_address_text"
    LISTING_LOCATION_TEXT = "listing_location_text"


@dataclass(frozen=True)
class SellerLocation:
    """A resolved origin for one cart line item."""

    listing_id: str
    coordinate: Coordinate
    source: LocationSource


class DeliveryMethod(str, Enum):
    SHIPPING = "shipping"
    PICKUP = "pickup"


@dataclass
class CartLineItem:
    """One listing in the buyer's cart."""

    listing_id: str
    quantity: int = 1
    delivery_method: DeliveryMethod | None = None
    title: str = ""

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {self.quantity}")
        if self.delivery_method is not None:
            self.delivery_method = DeliveryMethod(self.delivery_method)

    @property
    def is_shipping(self) -> bool:
        return self.delivery_method is DeliveryMethod.SHIPPING


@dataclass(frozen=True)
class RouteQuote:
    """Distance and fee for delivering a cart. Recomputed on every request."""

    total_distance_miles: float
    rate_per_mile_cents: int
    total_fee_cents: int

    @classmethod
    def zero(cls, rate_per_mile_cents: int = 0) -> "RouteQuote":
        return cls(
            total_distance_miles=0.0,
            rate_per_mile_cents=rate_per_mile_cents,
            total_fee_cents=0,
        )

    def as_response(self) -> dict:
        return {
            "totalDistanceMiles": round(self.total_distance_miles, 1),
            "totalFeeCents": self.total_fee_cents,
            "rateCentsPerMile": self.rate_per_mile_cents,
        }


@dataclass(frozen=True)
class CheckoutItemResult:
    """Outcome of checking out one cart line item."""

    listing_id: str
    title: str
    success: bool
    order_id: str | None = None
    error: str | None = None
    tracking_url: str | None = None


@dataclass(frozen=True)
class DeliveryTask:
    """A task created with the delivery provider."""

    task_id: str
    tracking_url: str | None = None
