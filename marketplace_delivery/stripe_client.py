"""Stripe REST client for saving and charging the buyer's payment method."""

import logging
import os

import requests
from dotenv import load_dotenv

from marketplace_delivery.base_client import DEFAULT_TIMEOUT, PaymentProcessorClient
from marketplace_delivery.errors import PaymentError

load_dotenv()

logger = logging.getLogger(__name__)

BASE_URL = "https://api.stripe.com/v1"


class StripeClient(PaymentProcessorClient):
    """Client for the Stripe API."""

    def __init__(
        self,
        secret_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY", "")
        if not self.secret_key:
            raise ValueError(
                "STRIPE_SECRET_KEY must be set either as an argument or in a .env file."
            )
        self.timeout = timeout
        self.session = requests.Session()
        # Stripe uses the secret key as the basic auth username.
        self.session.auth = (self.secret_key, "")

    def _post(self, endpoint: str, data: dict | None = None) -> dict:
        """POST a form-encoded request and return the parsed object.

        Raises:
            PaymentError: With Stripe's own message when the request fails.
        """
        try:
            resp = self.session.post(f"{BASE_URL}/{endpoint}", data=data or {}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PaymentError(f"Stripe request failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise PaymentError("Failed to parse Stripe response") from exc

        if resp.status_code >= 400:
            message = body.get("error", {}).get("message") or "Payment failed"
            raise PaymentError(message)
        return body

    def create_setup_intent(self, customer_id: str) -> dict:
        return self._post(
            "setup_intents",
            {
                "customer": customer_id,
                "usage": "off_session",
                "payment_method_types[]": "card",
            },
        )

    def confirm_setup_intent(self, setup_intent_id: str, payment_method: str) -> dict:
        return self._post(f"setup_intents/{setup_intent_id}/confirm", {"payment_method": payment_method})

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> dict:
        return self._post(f"payment_methods/{payment_method_id}/attach", {"customer": customer_id})

    def confirm_payment_intent(self, payment_intent_id: str, payment_method_id: str) -> dict:
        intent = self._post(
            f"payment_intents/{payment_intent_id}/confirm",
            {"payment_method": payment_method_id},
        )
        logger.debug("Payment intent %s is %s", payment_intent_id, intent.get("status"))
        return intent
