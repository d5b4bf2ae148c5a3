"""Sharetribe marketplace API client for listings, users and transactions."""

import logging
import os

import requests
from dotenv import load_dotenv

from marketplace_delivery.base_client import DEFAULT_TIMEOUT, MarketplaceClient
from marketplace_delivery.errors import MarketplaceError, MarketplacePermissionError

load_dotenv()

logger = logging.getLogger(__name__)

MARKETPLACE_API_URL = "https://flex-api.sharetribe.com/v1/api"
INTEGRATION_API_URL = "https://flex-integ-api.sharetribe.com/v1/integration_api"

DEFAULT_PROCESS_ALIAS = "default-purchase/release-1"


def resource_id(ref: dict | None) -> str | None:
    """Return the UUID string of a resource or relationship reference.

    The API returns ids either as plain strings or as ``{"uuid": ...}``.
    """
    if not ref:
        return None
    rid = ref.get("id")
    if isinstance(rid, dict):
        return rid.get("uuid")
    return rid


def find_included(included: list[dict], resource_type: str, rid: str | None) -> dict | None:
    """Find a resource of *resource_type* with id *rid* in an ``included`` list."""
    if rid is None:
        return None
    for res in included:
        if res.get("type") == resource_type and resource_id(res) == rid:
            return res
    return None


class SharetribeClient(MarketplaceClient):
    """Client for the Sharetribe Marketplace and Integration APIs.

    The same class talks to both APIs; they differ in base URL and in the
    token used. Integration API credentials can read sellers' protected
    profile data, which the public Marketplace API hides.
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = MARKETPLACE_API_URL,
        process_alias: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.access_token = access_token or os.getenv("SHARETRIBE_ACCESS_TOKEN", "")
        if not self.access_token:
            raise ValueError(
                "SHARETRIBE_ACCESS_TOKEN must be set either as an argument or in a .env file."
            )
        self.base_url = base_url.rstrip("/")
        self.process_alias = process_alias or os.getenv("SHARETRIBE_PROCESS_ALIAS", DEFAULT_PROCESS_ALIAS)
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            }
        )

    @classmethod
    def integration(cls, access_token: str | None = None, **kwargs) -> "SharetribeClient":
        """Build a client for the Integration API."""
        token = access_token or os.getenv("SHARETRIBE_INTEGRATION_TOKEN", "")
        if not token:
            raise MarketplacePermissionError("Integration API credentials are not configured")
        return cls(access_token=token, base_url=INTEGRATION_API_URL, **kwargs)

    def _request(self, method: str, endpoint: str, params: dict | None = None, body: dict | None = None) -> dict:
        url = f"{self.base_url}/{endpoint}"
        try:
            resp = self.session.request(method, url, params=params, json=body, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            try:
                payload = exc.response.json()
            except ValueError:
                payload = {}
            error_cls = MarketplacePermissionError if status in (401, 403) else MarketplaceError
            raise error_cls(f"{method} {endpoint} failed with HTTP {status}", status, payload) from exc
        except requests.RequestException as exc:
            raise MarketplaceError(f"{method} {endpoint} failed: {exc}") from exc

    def _get(self, endpoint: str, params: dict | None = None) -> dict:
        return self._request("GET", endpoint, params=params)

    def _post(self, endpoint: str, body: dict, params: dict | None = None) -> dict:
        return self._request("POST", endpoint, params=params, body=body)

    def show_listing(self, listing_id: str, include_author: bool = False) -> tuple[dict, dict | None]:
        params: dict = {"id": listing_id}
        if include_author:
            params["include"] = "author"
        data = self._get("listings/show", params)

        listing = data["data"]
        author = None
        if include_author:
            author_ref = listing.get("relationships", {}).get("author", {}).get("data")
            author = find_included(data.get("included", []), "user", resource_id(author_ref))
        return listing, author

    def show_transaction(self, transaction_id: str, include: list[str] | None = None) -> tuple[dict, list[dict]]:
        params: dict = {"id": transaction_id}
        if include:
            params["include"] = ",".join(include)
        data = self._get("transactions/show", params)
        return data["data"], data.get("included", [])

    def initiate_privileged(
        self,
        listing_id: str,
        quantity: int,
        delivery_method: str | None = None,
        shipping_address: dict | None = None,
        delivery_fee_cents: int = 0,
    ) -> dict:
        protected_data: dict = {}
        if shipping_address:
            protected_data["shippingAddress"] = shipping_address
        if delivery_fee_cents:
            protected_data["deliveryFeeCents"] = delivery_fee_cents

        params: dict = {
            "listingId": listing_id,
            "stockReservationQuantity": quantity,
        }
        if delivery_method:
            params["deliveryMethod"] = delivery_method
        if protected_data:
            params["protectedData"] = protected_data

        body = {
            "processAlias": self.process_alias,
            "transition": "transition/request-payment",
            "params": params,
        }
        data = self._post("transactions/initiate", body, params={"expand": "true", "include": "provider"})
        return data["data"]

    def transition_transaction(self, transaction_id: str, transition: str, params: dict | None = None) -> dict:
        body = {"id": transaction_id, "transition": transition, "params": params or {}}
        data = self._post("transactions/transition", body, params={"expand": "true"})
        logger.info("Transaction %s transitioned via %s", transaction_id, transition)
        return data["data"]

    def show_current_user(self) -> dict:
        return self._get("current_user/show")["data"]
