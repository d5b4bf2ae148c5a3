import pytest
from fakes import BUYER, BUYER_QUERY, FARM_A, FARM_B, FakeGeocoder, FakeMarketplace, make_author, make_listing

from marketplace_delivery.delivery_estimation import DeliveryEstimationService
from marketplace_delivery.errors import EstimationError
from marketplace_delivery.geo import distance_miles
from marketplace_delivery.models import Address, LocationSource, RouteQuote
from marketplace_delivery.settings_store import InMemorySettingsStore

BUYER_ADDRESS = Address(line1="1 Main St", city="Rochester", state="MN", postal_code="55901", country="US")

SELLER_ADDRESS = {"street": "9 Barn Ln", "city": "Faribault", "state": "MN", "zip": "55021", "country": "US"}
SELLER_QUERY = "9 Barn Ln, Faribault, MN, 55021, US"


def _listings():
    return {
        "eggs": (make_listing("eggs", geolocation={"lat": 45.0, "lng": -93.0}), make_author("seller-a")),
        "milk": (make_listing("milk", author_id="seller-b"), make_author("seller-b", address=SELLER_ADDRESS)),
        "honey": (make_listing("honey", geolocation={"lat": 45.0, "lng": -93.0}), make_author("seller-a")),
    }


@pytest.fixture
def geocoder():
    return FakeGeocoder({BUYER_QUERY: BUYER, SELLER_QUERY: FARM_B})


def _service(settings, geocoder, public, integration=None):
    return DeliveryEstimationService(settings, geocoder, public, integration, max_workers=4)


def test_zero_rate_makes_no_calls(geocoder):
    public = FakeMarketplace(_listings())
    integration = FakeMarketplace(_listings())
    service = _service(InMemorySettingsStore(rate_per_mile_cents=0), geocoder, public, integration)

    quote = service.estimate(["eggs", "milk"], BUYER_ADDRESS)

    assert quote.total_fee_cents == 0
    assert quote.rate_per_mile_cents == 0
    assert geocoder.calls == []
    assert public.shown_listings == []
    assert integration.shown_listings == []


def test_multi_seller_quote_uses_private_addresses(settings, geocoder):
    integration = FakeMarketplace(_listings())
    service = _service(settings, geocoder, FakeMarketplace(), integration)

    quote = service.estimate(["eggs", "milk", "honey"], BUYER_ADDRESS)

    # eggs and honey share a farm; the route runs farm A -> farm B -> buyer.
    expected = distance_miles(FARM_A, FARM_B) + distance_miles(FARM_B, BUYER)
    assert quote.total_distance_miles == pytest.approx(expected)
    assert quote.rate_per_mile_cents == 50
    assert quote.total_fee_cents == round(expected * 50)
    assert sorted(geocoder.calls) == sorted([SELLER_QUERY, BUYER_QUERY])


def test_duplicate_listing_ids_fetched_once(settings, geocoder):
    integration = FakeMarketplace(_listings())
    service = _service(settings, geocoder, FakeMarketplace(), integration)

    service.estimate(["eggs", "eggs", "eggs"], BUYER_ADDRESS)

    assert integration.shown_listings == [("eggs", True)]


def test_permission_error_degrades_to_public_data(settings, geocoder):
    public = FakeMarketplace(_listings())
    integration = FakeMarketplace(_listings(), privileged=False)
    service = _service(settings, geocoder, public, integration)

    quote = service.estimate(["eggs", "milk"], BUYER_ADDRESS)

    # Without the seller's private address, milk cannot be located.
    assert quote.total_distance_miles == pytest.approx(distance_miles(FARM_A, BUYER))
    assert {lid for lid, _ in public.shown_listings} == {"eggs", "milk"}
    assert all(include is False for _, include in public.shown_listings)


def test_without_integration_client_uses_public_data(settings, geocoder):
    public = FakeMarketplace(_listings())
    locations = _service(settings, geocoder, public).locate_sellers(["eggs", "milk"])
    assert [loc.source for loc in locations] == [LocationSource.LISTING_GEOLOCATION]


def test_unresolved_listings_are_excluded(settings):
    geocoder = FakeGeocoder({BUYER_QUERY: BUYER})
    integration = FakeMarketplace(_listings())
    service = _service(settings, geocoder, FakeMarketplace(), integration)

    quote = service.estimate(["eggs", "milk"], BUYER_ADDRESS)

    assert quote.total_distance_miles == pytest.approx(distance_miles(FARM_A, BUYER))


def test_no_resolvable_sellers_gives_zero_quote_without_buyer_geocoding(settings):
    geocoder = FakeGeocoder()
    listings = {"mystery": (make_listing("mystery"), None)}
    service = _service(settings, geocoder, FakeMarketplace(), FakeMarketplace(listings))

    quote = service.estimate(["mystery"], BUYER_ADDRESS)

    assert quote.total_distance_miles == 0
    assert quote.total_fee_cents == 0
    assert quote.rate_per_mile_cents == 50
    assert geocoder.calls == []


def test_buyer_geocoding_failure_is_fatal(settings):
    geocoder = FakeGeocoder()
    service = _service(settings, geocoder, FakeMarketplace(), FakeMarketplace(_listings()))

    with pytest.raises(EstimationError):
        service.estimate(["eggs"], BUYER_ADDRESS)


def test_public_listing_failure_is_fatal(settings, geocoder):
    service = _service(settings, geocoder, FakeMarketplace(), FakeMarketplace(privileged=False))

    with pytest.raises(EstimationError):
        service.estimate(["unknown"], BUYER_ADDRESS)


@pytest.mark.parametrize("listing_ids, address", [([], BUYER_ADDRESS), (["eggs"], None)])
def test_missing_input_rejected(settings, geocoder, listing_ids, address):
    with pytest.raises(ValueError):
        _service(settings, geocoder, FakeMarketplace()).estimate(listing_ids, address)


def test_response_rounds_distance(settings, geocoder):
    integration = FakeMarketplace(_listings())
    quote = _service(settings, geocoder, FakeMarketplace(), integration).estimate(["eggs"], BUYER_ADDRESS)

    response = quote.as_response()

    assert response["totalDistanceMiles"] == round(distance_miles(FARM_A, BUYER), 1)
    assert response["totalFeeCents"] == quote.total_fee_cents
    assert response["rateCentsPerMile"] == 50


def test_estimate_with_locations_returns_routed_origins(settings, geocoder):
    integration = FakeMarketplace(_listings())
    service = _service(settings, geocoder, FakeMarketplace(), integration)

    quote, locations = service.estimate_with_locations(["eggs", "milk"], BUYER_ADDRESS)

    expected = distance_miles(FARM_A, FARM_B) + distance_miles(FARM_B, BUYER)
    assert quote.total_distance_miles == pytest.approx(expected)
    assert {(loc.listing_id, loc.source) for loc in locations} == {
        ("eggs", LocationSource.LISTING_GEOLOCATION),
        ("milk", LocationSource.SELLER_ADDRESS_TEXT),
    }
    assert sorted(integration.shown_listings) == [("eggs", True), ("milk", True)]


def test_zero_rate_returns_no_locations(geocoder):
    service = _service(InMemorySettingsStore(), geocoder, FakeMarketplace(_listings()))
    assert service.estimate_with_locations(["eggs"], BUYER_ADDRESS) == (RouteQuote.zero(), [])
