import pytest
from fakes import BUYER, BUYER_QUERY, FakeDeliveryProvider, FakeGeocoder, FakeMarketplace, FakePayments

from marketplace_delivery.settings_store import InMemorySettingsStore


@pytest.fixture
def geocoder():
    return FakeGeocoder({BUYER_QUERY: BUYER})


@pytest.fixture
def marketplace():
    return FakeMarketplace()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def delivery_provider():
    return FakeDeliveryProvider()


@pytest.fixture
def settings():
    return InMemorySettingsStore(rate_per_mile_cents=50)


@pytest.fixture(autouse=True)
def _no_env_rate(monkeypatch):
    monkeypatch.delenv("DELIVERY_RATE_PER_MILE_CENTS", raising=False)
