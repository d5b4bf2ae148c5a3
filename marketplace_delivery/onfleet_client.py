"""OnFleet API client for creating last-mile delivery tasks."""

import os

import requests
from dotenv import load_dotenv

from marketplace_delivery.base_client import DEFAULT_TIMEOUT, DeliveryProviderClient
from marketplace_delivery.errors import DeliveryTaskError

load_dotenv()

BASE_URL = "https://onfleet.com/api/v2"


class OnFleetClient(DeliveryProviderClient):
    """Client for the OnFleet REST API.

    Unlike the other clients, a missing API key is not an error: the
    storefront runs without delivery tasks and :meth:`is_configured`
    reports False.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.api_key = api_key or os.getenv("ONFLEET_API_KEY", "")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        # OnFleet uses the API key as the basic auth username.
        self.session.auth = (self.api_key, "")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _request(self, method: str, path: str, body: dict | None = None) -> dict:
        """Make an authenticated request to the OnFleet API.

        Args:
            method: HTTP method (GET, POST, DELETE).
            path: API path after /api/v2 (e.g. "/tasks").
            body: JSON body for POST requests.

        Returns:
            Parsed JSON response dict.
        """
        if not self.is_configured():
            raise DeliveryTaskError("ONFLEET_API_KEY is not configured")

        try:
            resp = self.session.request(method, f"{BASE_URL}{path}", json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise DeliveryTaskError(f"OnFleet request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise DeliveryTaskError("Failed to parse OnFleet API response") from exc

        if resp.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            if isinstance(message, dict):
                message = message.get("message")
            raise DeliveryTaskError(message or f"OnFleet API error (HTTP {resp.status_code})")
        return data

    def create_task(
        self,
        destination: dict,
        recipients: list[dict],
        notes: str | None = None,
        metadata: list[dict] | None = None,
    ) -> dict:
        body: dict = {"destination": destination, "recipients": recipients}
        if notes:
            body["notes"] = notes
        if metadata:
            body["metadata"] = metadata
        return self._request("POST", "/tasks", body)

    def get_task(self, task_id: str) -> dict:
        return self._request("GET", f"/tasks/{task_id}")

    def delete_task(self, task_id: str) -> dict:
        return self._request("DELETE", f"/tasks/{task_id}")
