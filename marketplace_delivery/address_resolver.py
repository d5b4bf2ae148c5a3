"""Resolve where each listing ships from.

A seller's location can come from several places of varying quality. Each
place is a :class:`LocationStrategy`; :class:`AddressResolver` tries them in
order and returns the first hit.
"""

import logging
from abc import ABC, abstractmethod

from marketplace_delivery.base_client import Geocoder
from marketplace_delivery.errors import GeocodingError
from marketplace_delivery.models import Address, Coordinate, LocationSource, SellerLocation
from marketplace_delivery.sharetribe_client import resource_id

logger = logging.getLogger(__name__)


def _seller_address(author: dict | None) -> dict:
    if not author:
        return {}
    profile = author.get("attributes", {}).get("profile", {})
    return (profile.get("protectedData") or {}).get("address") or {}


class LocationStrategy(ABC):
    """One source of a seller location."""

    source: LocationSource

    @abstractmethod
    def resolve(self, listing: dict, author: dict | None) -> Coordinate | None:
        """Return a coordinate, or None if this source has nothing usable."""


class ListingGeolocation(LocationStrategy):
    source = LocationSource.LISTING_GEOLOCATION

    def resolve(self, listing: dict, author: dict | None) -> Coordinate | None:
        return Coordinate.from_mapping(listing.get("attributes", {}).get("geolocation"))


class SellerAddressCoordinates(LocationStrategy):
    source = LocationSource.SELLER_ADDRESS_COORDINATES

    def resolve(self, listing: dict, author: dict | None) -> Coordinate | None:
        return Coordinate.from_mapping(_seller_address(author))


class _GeocodingStrategy(LocationStrategy):
    def __init__(self, geocoder: Geocoder):
        self.geocoder = geocoder

    def _geocode(self, address: Address) -> Coordinate | None:
        try:
            return self.geocoder.geocode(address)
        except GeocodingError as exc:
            logger.debug("%s lookup failed for %r: %s", self.source.value, address.query, exc)
            return None


class SellerAddressText(_GeocodingStrategy):
    source = LocationSource.SELLER_ADDRESS_TEXT

    def resolve(self, listing: dict, author: dict | None) -> Coordinate | None:
        address = _seller_address(author)
        if not address.get("street"):
            return None
        return self._geocode(Address.from_mapping(address))


class ListingLocationText(_GeocodingStrategy):
    source = LocationSource.LISTING_LOCATION_TEXT

    def resolve(self, listing: dict, author: dict | None) -> Coordinate | None:
        public_data = listing.get("attributes", {}).get("publicData") or {}
        text = (public_data.get("location") or {}).get("address")
        if not text:
            return None
        return self._geocode(Address(line1=text))


def default_strategies(geocoder: Geocoder) -> list[LocationStrategy]:
    """Return the standard resolution order, most precise source first."""
    return [
        ListingGeolocation(),
        SellerAddressCoordinates(),
        SellerAddressText(geocoder),
        ListingLocationText(geocoder),
    ]


class AddressResolver:
    """Resolves a :class:`SellerLocation` for a listing."""

    def __init__(self, geocoder: Geocoder, strategies: list[LocationStrategy] | None = None):
        self.strategies = strategies if strategies is not None else default_strategies(geocoder)

    def resolve(self, listing: dict, author: dict | None = None) -> SellerLocation | None:
        """Try each strategy in order.

        Args:
            listing: Listing resource from the marketplace API.
            author: The listing's author, or None when it could not be read.

        Returns:
            The first resolved location, or None if every strategy failed.
        """
        listing_id = resource_id(listing) or ""
        for strategy in self.strategies:
            coordinate = strategy.resolve(listing, author)
            if coordinate is not None:
                logger.debug("Listing %s located via %s", listing_id, strategy.source.value)
                return SellerLocation(listing_id=listing_id, coordinate=coordinate, source=strategy.source)

        logger.info("Could not resolve a location for listing %s", listing_id)
        return None
