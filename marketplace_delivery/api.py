"""FastAPI routes for delivery quotes, geofence checks, admin settings and delivery webhooks.

Usage:
    uvicorn marketplace_delivery.api:create_app_from_env --factory
"""

import logging
from typing import Callable

from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from marketplace_delivery.base_client import DeliveryProviderClient, Geocoder, MarketplaceClient
from marketplace_delivery.delivery_estimation import DeliveryEstimationService
from marketplace_delivery.delivery_tasks import create_delivery_task, handle_delivery_webhook
from marketplace_delivery.errors import (
    DeliveryTaskError,
    EstimationError,
    InvalidSettingError,
    MarketplaceError,
)
from marketplace_delivery.geofence import GeofenceGate
from marketplace_delivery.models import Address
from marketplace_delivery.settings_store import SettingsProvider

logger = logging.getLogger(__name__)

UserClientFactory = Callable[[Request], MarketplaceClient]


class ShippingAddressBody(BaseModel):
    line1: str = ""
    city: str = ""
    state: str = ""
    postalCode: str = ""
    country: str = ""


class EstimateCartDeliveryRequest(BaseModel):
    listingIds: list[str] = []
    shippingAddress: ShippingAddressBody | None = None


class ValidateGeofenceRequest(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "US"


class CreateDeliveryTaskRequest(BaseModel):
    transactionId: str = ""


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def is_admin(user: dict) -> bool:
    private_data = user.get("attributes", {}).get("profile", {}).get("privateData") or {}
    return private_data.get("isAdmin") is True


def create_app(
    settings: SettingsProvider,
    geocoder: Geocoder,
    public_client: MarketplaceClient,
    integration_client: MarketplaceClient | None = None,
    delivery_provider: DeliveryProviderClient | None = None,
    user_client_factory: UserClientFactory | None = None,
) -> FastAPI:
    """Build the API application around the given collaborators.

    Args:
        settings: Delivery rate and geofence storage.
        geocoder: Geocoding provider.
        public_client: Marketplace client for public data.
        integration_client: Optional privileged marketplace client.
        delivery_provider: Optional last-mile delivery provider.
        user_client_factory: Returns a marketplace client acting as the
            requesting user; defaults to *public_client*.
    """
    app = FastAPI(title="Marketplace Delivery")
    estimation = DeliveryEstimationService(settings, geocoder, public_client, integration_client)
    gate = GeofenceGate(settings, geocoder)

    def user_client(request: Request) -> MarketplaceClient:
        return user_client_factory(request) if user_client_factory else public_client

    def require_admin(request: Request) -> JSONResponse | None:
        try:
            user = user_client(request).show_current_user()
        except MarketplaceError as exc:
            return _error(exc.status_code or 500, "Could not load current user")
        if not is_admin(user):
            return _error(403, "Forbidden: admin access required")
        return None

    @app.post("/api/estimate-cart-delivery")
    def estimate_cart_delivery(body: EstimateCartDeliveryRequest):
        if not body.listingIds or body.shippingAddress is None:
            return _error(400, "listingIds and shippingAddress are required")

        address = Address.from_mapping(body.shippingAddress.model_dump())
        try:
            quote = estimation.estimate(body.listingIds, address)
        except EstimationError as exc:
            logger.error("estimate-cart-delivery failed: %s", exc)
            return _error(500, "Failed to estimate delivery")
        return quote.as_response()

    @app.post("/api/validate-geofence")
    def validate_geofence(body: ValidateGeofenceRequest | None = None):
        if settings.get_geofence() is None:
            return {"valid": True}

        body = body or ValidateGeofenceRequest()
        if not (body.street and body.city and body.state and body.zip):
            return _error(400, "Missing required address fields")

        address = Address(
            line1=body.street,
            city=body.city,
            state=body.state,
            postal_code=body.zip,
            country=body.country,
        )
        return gate.is_address_allowed(address).as_response()

    @app.get("/api/delivery-settings")
    def get_delivery_settings():
        return {"deliveryRatePerMileCents": settings.get_delivery_rate()}

    @app.put("/api/delivery-settings")
    def put_delivery_settings(request: Request, payload: dict = Body(default={})):
        denied = require_admin(request)
        if denied is not None:
            return denied
        try:
            settings.set_delivery_rate(payload.get("deliveryRatePerMileCents"))
        except InvalidSettingError as exc:
            return _error(400, str(exc))
        return {"deliveryRatePerMileCents": settings.get_delivery_rate()}

    @app.get("/api/geofence-settings")
    def get_geofence_settings():
        polygon = settings.get_geofence()
        return {"polygon": polygon.to_geojson() if polygon else None}

    @app.put("/api/geofence-settings")
    def put_geofence_settings(request: Request, payload: dict = Body(default={})):
        denied = require_admin(request)
        if denied is not None:
            return denied
        if "polygon" not in payload:
            return _error(400, "Invalid polygon: must be a GeoJSON Polygon with at least 4 coordinates")
        try:
            polygon = settings.set_geofence(payload["polygon"])
        except InvalidSettingError as exc:
            return _error(400, str(exc))
        return {"polygon": polygon.to_geojson() if polygon else None}

    @app.post("/api/create-onfleet-task")
    def create_onfleet_task(request: Request, body: CreateDeliveryTaskRequest):
        if delivery_provider is None or not delivery_provider.is_configured():
            return {"skipped": True}
        if not body.transactionId:
            return _error(400, "transactionId is required")
        try:
            task = create_delivery_task(body.transactionId, user_client(request), delivery_provider)
        except DeliveryTaskError as exc:
            logger.error("create-onfleet-task failed: %s", exc)
            return _error(500, "Failed to create delivery task")
        return {"taskId": task.task_id, "trackingURL": task.tracking_url}

    @app.get("/api/onfleet-webhook")
    def validate_onfleet_webhook(check: str = "ok"):
        return JSONResponse(content=check)

    @app.post("/api/onfleet-webhook")
    async def onfleet_webhook(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = None
        configured = delivery_provider is not None and delivery_provider.is_configured()
        # Always 200: any other status makes the provider retry.
        try:
            return handle_delivery_webhook(payload, integration_client, configured)
        except Exception as exc:
            logger.exception("onfleet-webhook error")
            return {"ok": False, "error": str(exc)}

    return app


def create_app_from_env() -> FastAPI:
    """Build the application with clients configured from the environment."""
    from marketplace_delivery.main import build_services

    services = build_services()
    return create_app(
        settings=services.settings,
        geocoder=services.geocoder,
        public_client=services.public_client,
        integration_client=services.integration_client,
        delivery_provider=services.delivery_provider,
    )
