"""Delivery fee quotes for multi-seller carts."""

import logging
from concurrent.futures import ThreadPoolExecutor

from marketplace_delivery.address_resolver import AddressResolver
from marketplace_delivery.base_client import Geocoder, MarketplaceClient
from marketplace_delivery.errors import EstimationError, GeocodingError, MarketplaceError
from marketplace_delivery.models import Address, RouteQuote, SellerLocation
from marketplace_delivery.route_planner import estimate_route
from marketplace_delivery.settings_store import SettingsProvider

logger = logging.getLogger(__name__)

MAX_WORKERS = 8


class DeliveryEstimationService:
    """Quotes the delivery fee for a cart.

    Sellers are located concurrently, deduplicated and routed to the buyer.
    Quotes are never stored; every call recomputes from current data.

    Args:
        settings: Source of the per-mile rate.
        geocoder: Used for seller fallbacks and the buyer's address.
        public_client: Marketplace client that can read public listing data.
        integration_client: Optional privileged client that can also read
            sellers' protected addresses. Preferred when available.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        geocoder: Geocoder,
        public_client: MarketplaceClient,
        integration_client: MarketplaceClient | None = None,
        resolver: AddressResolver | None = None,
        max_workers: int = MAX_WORKERS,
    ):
        self.settings = settings
        self.geocoder = geocoder
        self.public_client = public_client
        self.integration_client = integration_client
        self.resolver = resolver or AddressResolver(geocoder)
        self.max_workers = max_workers

    def _fetch_listings(self, pool: ThreadPoolExecutor, listing_ids: list[str]) -> list[tuple[dict, dict | None]]:
        if self.integration_client is not None:
            client = self.integration_client
            try:
                return list(pool.map(lambda lid: client.show_listing(lid, include_author=True), listing_ids))
            except MarketplaceError as exc:
                logger.warning("Integration API unavailable (%s); using public listing data", exc)

        try:
            return list(pool.map(lambda lid: self.public_client.show_listing(lid), listing_ids))
        except MarketplaceError as exc:
            raise EstimationError(f"Could not load listings: {exc}") from exc

    def locate_sellers(self, listing_ids: list[str]) -> list[SellerLocation]:
        """Resolve a location for every distinct listing, dropping unresolved ones."""
        distinct = list(dict.fromkeys(listing_ids))
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            records = self._fetch_listings(pool, distinct)
            locations = pool.map(lambda rec: self.resolver.resolve(*rec), records)
            return [loc for loc in locations if loc is not None]

    def estimate(self, listing_ids: list[str], shipping_address: Address | None) -> RouteQuote:
        """Quote delivery for the listings in a cart.

        Args:
            listing_ids: Listings in the cart; duplicates are ignored.
            shipping_address: The buyer's delivery address.

        Returns:
            The route quote. A zero rate yields a zero quote without any
            network calls.

        Raises:
            ValueError: If no listings or no address were given.
            EstimationError: If listings cannot be loaded or the buyer's
                address cannot be geocoded.
        """
        quote, _ = self.estimate_with_locations(listing_ids, shipping_address)
        return quote

    def estimate_with_locations(
        self, listing_ids: list[str], shipping_address: Address | None
    ) -> tuple[RouteQuote, list[SellerLocation]]:
        """Like :meth:`estimate`, also returning the seller locations the quote was routed through.

        The locations list is empty when the rate is zero.
        """
        if not listing_ids or shipping_address is None:
            raise ValueError("listingIds and shippingAddress are required")

        rate = self.settings.get_delivery_rate()
        if rate <= 0:
            return RouteQuote.zero(), []

        locations = self.locate_sellers(listing_ids)
        if not locations:
            logger.info("No seller locations resolved for %d listing(s)", len(listing_ids))
            return RouteQuote.zero(rate), []

        try:
            destination = self.geocoder.geocode(shipping_address)
        except GeocodingError as exc:
            raise EstimationError(f"Could not geocode shipping address: {exc}") from exc

        quote = estimate_route([loc.coordinate for loc in locations], destination, rate)
        logger.info(
            "Quoted %.1f miles, %d cents for %d seller location(s)",
            quote.total_distance_miles,
            quote.total_fee_cents,
            len(locations),
        )
        return quote, locations
