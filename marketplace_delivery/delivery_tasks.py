"""Delivery task creation and completion webhook handling."""

import logging

from marketplace_delivery.base_client import DeliveryProviderClient, MarketplaceClient
from marketplace_delivery.errors import DeliveryTaskError, MarketplaceError
from marketplace_delivery.models import Address, DeliveryTask
from marketplace_delivery.sharetribe_client import find_included, resource_id

logger = logging.getLogger(__name__)

# OnFleet webhook trigger ids: 0 start, 1 ETA, 2 arrival, 3 completed, 4 failed.
TRIGGER_TASK_COMPLETED = 3

MARK_DELIVERED_TRANSITION = "transition/operator-mark-delivered"


def build_task_request(transaction: dict, included: list[dict]) -> dict:
    """Build the provider task body for a marketplace transaction.

    Args:
        transaction: Transaction resource, with listing and customer
            relationships.
        included: Resources included alongside the transaction.

    Returns:
        Keyword arguments for :meth:`DeliveryProviderClient.create_task`.

    Raises:
        DeliveryTaskError: If the transaction carries no shipping address.
    """
    transaction_id = resource_id(transaction)
    attributes = transaction.get("attributes", {})
    shipping = (attributes.get("protectedData") or {}).get("shippingAddress")
    if not shipping:
        raise DeliveryTaskError("Transaction has no shipping address")

    relationships = transaction.get("relationships", {})
    customer = find_included(
        included, "user", resource_id(relationships.get("customer", {}).get("data"))
    )
    customer_name = (
        customer.get("attributes", {}).get("profile", {}).get("displayName") if customer else None
    ) or "Customer"

    listing = find_included(
        included, "listing", resource_id(relationships.get("listing", {}).get("data"))
    )
    listing_title = (listing.get("attributes", {}).get("title") if listing else None) or "Marketplace order"

    # The provider geocodes a single unparsed string more reliably than
    # partially filled fields.
    destination = {"address": {"unparsed": Address.from_mapping(shipping).query}}

    phone = shipping.get("phone") or ""
    recipient: dict = {"name": customer_name, "phone": phone}
    if not phone:
        recipient["skipPhoneNumberValidation"] = True

    return {
        "destination": destination,
        "recipients": [recipient],
        "notes": f"Order: {listing_title} (Transaction: {transaction_id})",
        "metadata": [{"name": "transactionId", "type": "string", "value": transaction_id}],
    }


def create_delivery_task(
    transaction_id: str,
    marketplace: MarketplaceClient,
    provider: DeliveryProviderClient,
) -> DeliveryTask:
    """Create a provider task that delivers *transaction_id*'s order.

    Raises:
        DeliveryTaskError: If the transaction cannot be read, has no
            shipping address, or the provider rejects the task.
    """
    try:
        transaction, included = marketplace.show_transaction(transaction_id, include=["listing", "customer"])
    except MarketplaceError as exc:
        raise DeliveryTaskError(f"Could not load transaction {transaction_id}: {exc}") from exc

    task = provider.create_task(**build_task_request(transaction, included))
    task_id = task.get("id") if isinstance(task, dict) else None
    if not task_id:
        raise DeliveryTaskError(f"Delivery provider returned no task id for transaction {transaction_id}")
    logger.info("Created delivery task %s for transaction %s", task_id, transaction_id)
    return DeliveryTask(task_id=task_id, tracking_url=task.get("trackingURL"))


def _metadata_value(task: dict, name: str) -> str | None:
    for entry in task.get("metadata") or []:
        if entry.get("name") == name:
            return entry.get("value")
    return None


def handle_delivery_webhook(payload: dict | None, marketplace: MarketplaceClient | None, configured: bool) -> dict:
    """Reconcile a delivery provider webhook with the marketplace.

    A "task completed" event moves the linked transaction to delivered.
    The returned dict is the response body; callers always answer HTTP 200
    so the provider does not retry. Transitions the marketplace rejects are
    logged for an operator to apply by hand.
    """
    if not configured:
        return {"ok": True}

    # The provider validates webhook URLs by sending a check value to echo.
    if not payload or payload.get("check"):
        return {"check": (payload or {}).get("check") or "ok"}

    if payload.get("triggerId") != TRIGGER_TASK_COMPLETED:
        return {"ok": True, "ignored": True}

    task = (payload.get("data") or {}).get("task") or {}
    transaction_id = _metadata_value(task, "transactionId")
    if not transaction_id:
        logger.warning("Delivery webhook %s has no transactionId in task metadata", payload.get("taskId"))
        return {"ok": True, "warning": "no transactionId"}

    if marketplace is None:
        logger.error("Cannot mark transaction %s delivered: no integration client; mark it manually", transaction_id)
        return {"ok": False, "transactionId": transaction_id, "warning": "mark delivered manually"}

    try:
        marketplace.transition_transaction(transaction_id, MARK_DELIVERED_TRANSITION)
    except MarketplaceError as exc:
        logger.error("Could not mark transaction %s delivered; mark it manually: %s", transaction_id, exc)
        return {"ok": False, "transactionId": transaction_id, "warning": "mark delivered manually"}

    logger.info("Transaction %s marked as delivered", transaction_id)
    return {"ok": True, "transactionId": transaction_id}
