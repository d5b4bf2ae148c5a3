"""HTTP client tests with the requests session mocked out."""

from unittest.mock import MagicMock

import pytest
import requests

from marketplace_delivery.errors import (
    DeliveryTaskError,
    GeocodingError,
    MarketplaceError,
    MarketplacePermissionError,
    PaymentError,
)
from marketplace_delivery.mapbox_geocoder import MapboxGeocoder
from marketplace_delivery.models import Address
from marketplace_delivery.onfleet_client import OnFleetClient
from marketplace_delivery.sharetribe_client import INTEGRATION_API_URL, SharetribeClient
from marketplace_delivery.stripe_client import StripeClient

ADDRESS = Address(line1="1 Main St", city="Rochester", state="MN", postal_code="55901", country="US")


def _response(status_code=200, body=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body if body is not None else {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    return resp


class TestMapboxGeocoder:
    @pytest.fixture
    def geocoder(self):
        geocoder = MapboxGeocoder(access_token="pk.test", timeout=3)
        geocoder.session = MagicMock()
        return geocoder

    def test_requires_token(self, monkeypatch):
        monkeypatch.delenv("MAPBOX_ACCESS_TOKEN", raising=False)
        with pytest.raises(ValueError):
            MapboxGeocoder()

    def test_returns_first_feature(self, geocoder):
        geocoder.session.get.return_value = _response(body={"features": [{"center": [-92.46, 44.02]}]})

        coordinate = geocoder.geocode(ADDRESS)

        assert (coordinate.lat, coordinate.lng) == (44.02, -92.46)
        url = geocoder.session.get.call_args.args[0]
        assert url.endswith("/1%20Main%20St%2C%20Rochester%2C%20MN%2C%2055901%2C%20US.json")
        kwargs = geocoder.session.get.call_args.kwargs
        assert kwargs["params"] == {"access_token": "pk.test", "limit": 1}
        assert kwargs["timeout"] == 3

    def test_no_features(self, geocoder):
        geocoder.session.get.return_value = _response(body={"features": []})
        with pytest.raises(GeocodingError):
            geocoder.geocode(ADDRESS)

    def test_http_error(self, geocoder):
        geocoder.session.get.return_value = _response(status_code=401)
        with pytest.raises(GeocodingError):
            geocoder.geocode(ADDRESS)

    def test_transport_error(self, geocoder):
        geocoder.session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(GeocodingError):
            geocoder.geocode(ADDRESS)

    def test_unparsable_body(self, geocoder):
        geocoder.session.get.return_value = _response(json_error=True)
        with pytest.raises(GeocodingError):
            geocoder.geocode(ADDRESS)

    def test_out_of_range_coordinate(self, geocoder):
        geocoder.session.get.return_value = _response(body={"features": [{"center": [-92.0, 144.0]}]})
        with pytest.raises(GeocodingError):
            geocoder.geocode(ADDRESS)

    def test_empty_address_makes_no_request(self, geocoder):
        with pytest.raises(GeocodingError):
            geocoder.geocode(Address())
        geocoder.session.get.assert_not_called()


class TestSharetribeClient:
    @pytest.fixture
    def client(self):
        client = SharetribeClient(access_token="token", process_alias="purchase/v2", timeout=4)
        client.session = MagicMock()
        return client

    def test_integration_requires_credentials(self, monkeypatch):
        monkeypatch.delenv("SHARETRIBE_INTEGRATION_TOKEN", raising=False)
        with pytest.raises(MarketplacePermissionError):
            SharetribeClient.integration()

    def test_integration_uses_integration_api(self):
        client = SharetribeClient.integration(access_token="secret")
        assert client.base_url == INTEGRATION_API_URL
        assert client.session.headers["Authorization"] == "Bearer secret"

    def test_show_listing_with_author(self, client):
        listing = {
            "id": {"uuid": "eggs"},
            "type": "listing",
            "relationships": {"author": {"data": {"id": {"uuid": "seller-1"}, "type": "user"}}},
        }
        author = {"id": {"uuid": "seller-1"}, "type": "user", "attributes": {}}
        client.session.request.return_value = _response(body={"data": listing, "included": [author]})

        got_listing, got_author = client.show_listing("eggs", include_author=True)

        assert got_listing == listing
        assert got_author == author
        args, kwargs = client.session.request.call_args
        assert args == ("GET", "https://flex-api.sharetribe.com/v1/api/listings/show")
        assert kwargs["params"] == {"id": "eggs", "include": "author"}
        assert kwargs["timeout"] == 4

    def test_show_listing_without_author(self, client):
        client.session.request.return_value = _response(body={"data": {"id": "eggs"}})
        assert client.show_listing("eggs") == ({"id": "eggs"}, None)

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures_are_permission_errors(self, client, status):
        client.session.request.return_value = _response(status_code=status)
        with pytest.raises(MarketplacePermissionError) as exc_info:
            client.show_listing("eggs", include_author=True)
        assert exc_info.value.status_code == status

    def test_other_failures(self, client):
        client.session.request.return_value = _response(status_code=409, body={"errors": [{"code": "x"}]})
        with pytest.raises(MarketplaceError) as exc_info:
            client.transition_transaction("tx-1", "transition/confirm-payment")
        assert not isinstance(exc_info.value, MarketplacePermissionError)
        assert exc_info.value.status_code == 409
        assert exc_info.value.response == {"errors": [{"code": "x"}]}

    def test_transport_failure(self, client):
        client.session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(MarketplaceError):
            client.show_current_user()

    def test_initiate_privileged_body(self, client):
        client.session.request.return_value = _response(body={"data": {"id": "tx-1"}})

        client.initiate_privileged(
            "eggs",
            2,
            delivery_method="shipping",
            shipping_address={"line1": "1 Main St"},
            delivery_fee_cents=420,
        )

        args, kwargs = client.session.request.call_args
        assert args[1].endswith("/transactions/initiate")
        assert kwargs["json"] == {
            "processAlias": "purchase/v2",
            "transition": "transition/request-payment",
            "params": {
                "listingId": "eggs",
                "stockReservationQuantity": 2,
                "deliveryMethod": "shipping",
                "protectedData": {
                    "shippingAddress": {"line1": "1 Main St"},
                    "deliveryFeeCents": 420,
                },
            },
        }

    def test_initiate_without_fee_omits_protected_data(self, client):
        client.session.request.return_value = _response(body={"data": {"id": "tx-1"}})
        client.initiate_privileged("eggs", 1)
        assert "protectedData" not in client.session.request.call_args.kwargs["json"]["params"]


class TestStripeClient:
    @pytest.fixture
    def client(self):
        client = StripeClient(secret_key="sk_test")
        client.session = MagicMock()
        return client

    def test_requires_key(self, monkeypatch):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        with pytest.raises(ValueError):
            StripeClient()

    def test_confirm_payment_intent(self, client):
        client.session.post.return_value = _response(body={"id": "pi_1", "status": "requires_capture"})

        intent = client.confirm_payment_intent("pi_1", "pm_1")

        assert intent["status"] == "requires_capture"
        args, kwargs = client.session.post.call_args
        assert args[0] == "https://api.stripe.com/v1/payment_intents/pi_1/confirm"
        assert kwargs["data"] == {"payment_method": "pm_1"}

    def test_error_carries_stripe_message(self, client):
        client.session.post.return_value = _response(
            status_code=402, body={"error": {"message": "Your card was declined."}}
        )
        with pytest.raises(PaymentError, match="Your card was declined."):
            client.confirm_payment_intent("pi_1", "pm_1")

    def test_transport_error(self, client):
        client.session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(PaymentError):
            client.create_setup_intent("cus_1")


class TestOnFleetClient:
    def test_missing_key_is_unconfigured(self, monkeypatch):
        monkeypatch.delenv("ONFLEET_API_KEY", raising=False)
        client = OnFleetClient()
        assert client.is_configured() is False
        with pytest.raises(DeliveryTaskError):
            client.create_task({"address": {"unparsed": "x"}}, [])

    def test_create_task(self):
        client = OnFleetClient(api_key="key")
        client.session = MagicMock()
        client.session.request.return_value = _response(body={"id": "task-1", "trackingURL": "https://onf.lt/x"})

        task = client.create_task({"address": {"unparsed": "x"}}, [{"name": "Bea"}], notes="Order: Eggs")

        assert task["id"] == "task-1"
        args, kwargs = client.session.request.call_args
        assert args == ("POST", "https://onfleet.com/api/v2/tasks")
        assert kwargs["json"] == {
            "destination": {"address": {"unparsed": "x"}},
            "recipients": [{"name": "Bea"}],
            "notes": "Order: Eggs",
        }

    def test_error_message(self):
        client = OnFleetClient(api_key="key")
        client.session = MagicMock()
        client.session.request.return_value = _response(
            status_code=400, body={"code": "InvalidArgument", "message": {"message": "Invalid address"}}
        )
        with pytest.raises(DeliveryTaskError, match="Invalid address"):
            client.create_task({"address": {"unparsed": "x"}}, [])

    def test_get_and_delete_task(self):
        client = OnFleetClient(api_key="key")
        client.session = MagicMock()
        client.session.request.return_value = _response(body={"id": "task-1", "state": 0})

        assert client.get_task("task-1")["state"] == 0
        args, kwargs = client.session.request.call_args
        assert args == ("GET", "https://onfleet.com/api/v2/tasks/task-1")
        assert kwargs["json"] is None

        client.session.request.return_value = _response(body={})
        assert client.delete_task("task-1") == {}
        assert client.session.request.call_args.args == ("DELETE", "https://onfleet.com/api/v2/tasks/task-1")

    def test_get_task_not_found(self):
        client = OnFleetClient(api_key="key")
        client.session = MagicMock()
        client.session.request.return_value = _response(
            status_code=404, body={"code": "ResourceNotFound", "message": {"message": "Task not found"}}
        )
        with pytest.raises(DeliveryTaskError, match="Task not found"):
            client.get_task("task-404")
