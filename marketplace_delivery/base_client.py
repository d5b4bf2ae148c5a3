"""Abstract base classes for the external services the core talks to."""

from abc import ABC, abstractmethod

from marketplace_delivery.models import Address, Coordinate

# Seconds before any external HTTP call is abandoned.
DEFAULT_TIMEOUT = 10


class Geocoder(ABC):
    """Forward geocoding provider."""

    @abstractmethod
    def geocode(self, address: Address) -> Coordinate:
        """Resolve an address to coordinates.

        Args:
            address: The address to look up.

        Returns:
            The best-match coordinate.

        Raises:
            GeocodingError: If the provider fails or finds nothing.
        """


class MarketplaceClient(ABC):
    """Capabilities consumed from the hosted marketplace backend."""

    @abstractmethod
    def show_listing(self, listing_id: str, include_author: bool = False) -> tuple[dict, dict | None]:
        """Fetch a listing and, when requested, its author.

        Args:
            listing_id: Listing UUID.
            include_author: Also return the author user resource.

        Returns:
            ``(listing, author)``; *author* is None when not requested or
            not visible.

        Raises:
            MarketplacePermissionError: If the client may not read the listing.
            MarketplaceError: For any other API failure.
        """

    @abstractmethod
    def show_transaction(self, transaction_id: str, include: list[str] | None = None) -> tuple[dict, list[dict]]:
        """Fetch a transaction and its included resources."""

    @abstractmethod
    def initiate_privileged(
        self,
        listing_id: str,
        quantity: int,
        delivery_method: str | None = None,
        shipping_address: dict | None = None,
        delivery_fee_cents: int = 0,
    ) -> dict:
        """Initiate a purchase transaction through the privileged endpoint.

        Returns:
            The created transaction resource. Its
            ``attributes.protectedData.stripePaymentIntents.default`` holds
            the payment intent to confirm.
        """

    @abstractmethod
    def transition_transaction(self, transaction_id: str, transition: str, params: dict | None = None) -> dict:
        """Apply *transition* to a transaction and return the updated resource."""

    @abstractmethod
    def show_current_user(self) -> dict:
        """Return the user resource for the client's credentials."""


class PaymentProcessorClient(ABC):
    """Capabilities consumed from the payment processor."""

    @abstractmethod
    def create_setup_intent(self, customer_id: str) -> dict:
        """Create a setup intent for saving a payment method."""

    @abstractmethod
    def confirm_setup_intent(self, setup_intent_id: str, payment_method: str) -> dict:
        """Confirm a setup intent with the supplied card payment method."""

    @abstractmethod
    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> dict:
        """Attach a payment method to a customer profile."""

    @abstractmethod
    def confirm_payment_intent(self, payment_intent_id: str, payment_method_id: str) -> dict:
        """Confirm a payment intent using a saved payment method."""


class DeliveryProviderClient(ABC):
    """Capabilities consumed from the last-mile delivery provider."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if credentials for the provider are available."""

    @abstractmethod
    def create_task(
        self,
        destination: dict,
        recipients: list[dict],
        notes: str | None = None,
        metadata: list[dict] | None = None,
    ) -> dict:
        """Create a delivery task and return the provider's task object."""

    @abstractmethod
    def get_task(self, task_id: str) -> dict:
        """Return the provider's current view of a task."""

    @abstractmethod
    def delete_task(self, task_id: str) -> dict:
        """Cancel a task that has not been completed."""
