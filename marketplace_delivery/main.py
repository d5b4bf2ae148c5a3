#!/usr/bin/env python3
"""CLI entry point for marketplace delivery quotes and settings."""

import argparse
import csv
import json
import logging
import sys
from dataclasses import dataclass

from marketplace_delivery.base_client import DeliveryProviderClient, Geocoder, MarketplaceClient
from marketplace_delivery.delivery_estimation import DeliveryEstimationService
from marketplace_delivery.errors import EstimationError, InvalidSettingError, MarketplaceError
from marketplace_delivery.geofence import GeofenceGate
from marketplace_delivery.models import Address, RouteQuote
from marketplace_delivery.settings_store import JsonFileSettingsStore, SettingsProvider

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Collaborators configured from the environment."""

    settings: SettingsProvider
    geocoder: Geocoder
    public_client: MarketplaceClient
    integration_client: MarketplaceClient | None
    delivery_provider: DeliveryProviderClient


def build_services(settings_dir: str | None = None) -> Services:
    """Instantiate the real clients from environment variables.

    Raises:
        ValueError: If required credentials are missing.
    """
    from marketplace_delivery.mapbox_geocoder import MapboxGeocoder
    from marketplace_delivery.onfleet_client import OnFleetClient
    from marketplace_delivery.sharetribe_client import SharetribeClient

    try:
        integration_client = SharetribeClient.integration()
    except MarketplaceError as exc:
        logger.warning("%s; seller protected addresses will not be used", exc)
        integration_client = None

    return Services(
        settings=JsonFileSettingsStore(settings_dir),
        geocoder=MapboxGeocoder(),
        public_client=SharetribeClient(),
        integration_client=integration_client,
        delivery_provider=OnFleetClient(),
    )


def _print_quote(listing_ids, address: Address, quote: RouteQuote):
    """Print a delivery quote to stdout."""
    print(f"\n{'=' * 70}")
    print("  DELIVERY QUOTE")
    print(f"  {len(listing_ids)} listing(s) to {address.query}")
    print(f"{'=' * 70}\n")
    print(f"  Distance: {quote.total_distance_miles:.1f} miles")
    print(f"  Rate:     {quote.rate_per_mile_cents} cents/mile")
    print(f"  Fee:      ${quote.total_fee_cents / 100:.2f}")
    print()


def _export_csv(locations, path):
    """Export the resolved seller origins to a CSV file."""
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["origin", "listing_id", "latitude", "longitude", "source"])
        for i, loc in enumerate(locations, 1):
            writer.writerow([i, loc.listing_id, loc.coordinate.lat, loc.coordinate.lng, loc.source.value])
    print(f"Seller locations exported to {path}")


def _address_from_args(args) -> Address:
    return Address(
        line1=args.line1,
        city=args.city or "",
        state=args.state or "",
        postal_code=args.postal_code or "",
        country=args.country or "",
    )


def _add_address_arguments(parser):
    group = parser.add_argument_group("Address")
    group.add_argument("--line1", required=True, help="Street address.")
    group.add_argument("--city", help="City.")
    group.add_argument("--state", help="State or province.")
    group.add_argument("--postal-code", help="Postal code.")
    group.add_argument("--country", help="Country.")


def cmd_estimate(args) -> int:
    services = build_services(args.settings_dir)
    service = DeliveryEstimationService(
        services.settings,
        services.geocoder,
        services.public_client,
        services.integration_client,
    )
    address = _address_from_args(args)
    try:
        quote, locations = service.estimate_with_locations(args.listing_ids, address)
    except EstimationError as exc:
        print(f"Cannot estimate delivery, try again: {exc}", file=sys.stderr)
        return 1
    _print_quote(args.listing_ids, address, quote)
    if args.csv:
        _export_csv(locations, args.csv)
    return 0


def cmd_check_address(args) -> int:
    services = build_services(args.settings_dir)
    gate = GeofenceGate(services.settings, services.geocoder)
    address = _address_from_args(args)
    decision = gate.is_address_allowed(address)
    if decision.valid:
        print(f"{address.query}: inside the service area")
        return 0
    reason = f" ({decision.reason})" if decision.reason else ""
    print(f"{address.query}: outside the service area{reason}")
    return 2


def cmd_set_rate(args) -> int:
    store = JsonFileSettingsStore(args.settings_dir)
    try:
        store.set_delivery_rate(args.rate)
    except InvalidSettingError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Delivery rate set to {store.get_delivery_rate()} cents per mile.")
    return 0


def cmd_set_geofence(args) -> int:
    store = JsonFileSettingsStore(args.settings_dir)
    if args.clear:
        store.set_geofence(None)
        print("Geofence cleared.")
        return 0

    try:
        with open(args.file, encoding="utf-8") as f:
            geometry = json.load(f)
        # Accept a bare geometry or a GeoJSON Feature wrapping one.
        if geometry.get("type") == "Feature":
            geometry = geometry.get("geometry")
        if geometry is None:
            raise ValueError(f"{args.file} has no geometry; use --clear to remove the geofence")
        polygon = store.set_geofence(geometry)
    except (OSError, ValueError, AttributeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Geofence set ({len(polygon.ring)} points).")
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "marketplace_delivery.api:create_app_from_env",
        factory=True,
        host=args.host,
        port=args.port,
    )
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Quote multi-seller delivery fees and manage delivery settings.",
    )
    parser.add_argument(
        "--settings-dir",
        help="Directory holding settings JSON files (overrides MARKETPLACE_SETTINGS_DIR env var).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help='Logging level (default: "WARNING").',
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    estimate = subparsers.add_parser("estimate", help="Quote delivery for a set of listings.")
    estimate.add_argument("listing_ids", nargs="+", metavar="LISTING_ID", help="Listing UUIDs in the cart.")
    _add_address_arguments(estimate)
    estimate.add_argument("--csv", metavar="FILE", help="Export the resolved seller locations to a CSV file.")
    estimate.set_defaults(func=cmd_estimate)

    check = subparsers.add_parser("check-address", help="Check an address against the geofence.")
    _add_address_arguments(check)
    check.set_defaults(func=cmd_check_address)

    set_rate = subparsers.add_parser("set-rate", help="Set the delivery rate in cents per mile.")
    set_rate.add_argument("rate", help="Non-negative integer; 0 disables delivery fees.")
    set_rate.set_defaults(func=cmd_set_rate)

    set_geofence = subparsers.add_parser("set-geofence", help="Set or clear the service-area polygon.")
    source = set_geofence.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", metavar="FILE", help="GeoJSON Polygon (or Feature) file.")
    source.add_argument("--clear", action="store_true", help="Remove the geofence.")
    set_geofence.set_defaults(func=cmd_set_geofence)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1", help='Bind address (default: "127.0.0.1").')
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000).")
    serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        sys.exit(args.func(args))
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
