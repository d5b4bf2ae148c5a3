"""Exceptions raised by the delivery estimation and checkout core."""


class MarketplaceDeliveryError(Exception):
    """Base class for all errors raised by this package."""


class GeocodingError(MarketplaceDeliveryError):
    """The geocoding provider could not turn an address into coordinates."""


class EstimationError(MarketplaceDeliveryError):
    """A delivery quote could not be produced for a cart."""


class InvalidSettingError(MarketplaceDeliveryError, ValueError):
    """A settings value failed validation."""


class MarketplaceError(MarketplaceDeliveryError):
    """The marketplace API rejected a request."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response or {}


class MarketplacePermissionError(MarketplaceError):
    """The marketplace API refused access (HTTP 401/403)."""


class PaymentError(MarketplaceDeliveryError):
    """The payment processor declined or failed a request."""


class DeliveryTaskError(MarketplaceDeliveryError):
    """A delivery task could not be created."""


class CheckoutError(MarketplaceDeliveryError):
    """A checkout run was driven through an invalid transition."""
