"""Sequential multi-item checkout.

Each cart item becomes its own marketplace transaction, charged with one
payment method saved up front. Items are processed strictly in order. If
the first item fails the run stops, since a declined card would fail every
other item too. Later failures are recorded and the run carries on, so a
finished run may have charged some items and not others.

The run is a plain :class:`CheckoutRun` object; :class:`CheckoutOrchestrator`
moves it between states one transition at a time::

    IDLE -> SETTING_UP_PAYMENT -> PROCESSING_ITEM -> COMPLETED
                |                      |          -> PARTIALLY_FAILED
                +--> ABORTED <---------+ (first item only)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from marketplace_delivery.base_client import DeliveryProviderClient, MarketplaceClient, PaymentProcessorClient
from marketplace_delivery.cart import Cart
from marketplace_delivery.delivery_tasks import create_delivery_task
from marketplace_delivery.errors import CheckoutError, MarketplaceDeliveryError, PaymentError
from marketplace_delivery.models import CartLineItem, CheckoutItemResult
from marketplace_delivery.sharetribe_client import resource_id

logger = logging.getLogger(__name__)

CONFIRM_PAYMENT_TRANSITION = "transition/confirm-payment"

# Payment intent statuses that mean the charge went through.
CONFIRMED_STATUSES = frozenset({"succeeded", "requires_capture", "processing"})

FIRST_ITEM_DECLINED = "Payment declined. Please check your card details."


class CheckoutState(str, Enum):
    IDLE = "idle"
    SETTING_UP_PAYMENT = "setting_up_payment"
    PROCESSING_ITEM = "processing_item"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({CheckoutState.COMPLETED, CheckoutState.PARTIALLY_FAILED, CheckoutState.ABORTED})


def attribute_delivery_fee(items: list[CartLineItem], delivery_fee_cents: int) -> list[int]:
    """Split a cart-wide delivery fee across items.

    The first shipping item carries the whole fee; every other item gets 0.
    """
    fees = [0] * len(items)
    if delivery_fee_cents > 0:
        for i, item in enumerate(items):
            if item.is_shipping:
                fees[i] = delivery_fee_cents
                break
    return fees


@dataclass
class CheckoutRun:
    """State of one checkout attempt."""

    items: list[CartLineItem]
    delivery_fees: list[int]
    shipping_address: dict | None = None
    payment_method_id: str | None = None
    current_index: int = 0
    results: list[CheckoutItemResult] = field(default_factory=list)
    state: CheckoutState = CheckoutState.IDLE
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def has_pending_items(self) -> bool:
        return self.current_index < len(self.items)

    @property
    def succeeded_ids(self) -> list[str]:
        return [r.listing_id for r in self.results if r.success]

    @property
    def failed_ids(self) -> list[str]:
        return [r.listing_id for r in self.results if not r.success]

    def summary(self) -> list[dict]:
        """Per-item outcomes for display to the buyer."""
        return [
            {
                "listingId": r.listing_id,
                "title": r.title,
                "success": r.success,
                "orderId": r.order_id,
                "error": r.error,
                "trackingURL": r.tracking_url,
            }
            for r in self.results
        ]


class CheckoutOrchestrator:
    """Drives :class:`CheckoutRun` objects through checkout.

    Args:
        marketplace: Privileged marketplace client used to initiate and
            confirm transactions.
        payments: Payment processor client.
        customer_id: The buyer's payment processor customer id.
        delivery_provider: Optional provider for best-effort delivery tasks.
    """

    def __init__(
        self,
        marketplace: MarketplaceClient,
        payments: PaymentProcessorClient,
        customer_id: str,
        delivery_provider: DeliveryProviderClient | None = None,
    ):
        self.marketplace = marketplace
        self.payments = payments
        self.customer_id = customer_id
        self.delivery_provider = delivery_provider

    def start(
        self,
        items: list[CartLineItem],
        delivery_fee_cents: int = 0,
        shipping_address: dict | None = None,
        payment_method_id: str | None = None,
    ) -> CheckoutRun:
        """Create a run for *items*; nothing is charged yet."""
        if not items:
            raise ValueError("Cannot check out an empty cart")
        return CheckoutRun(
            items=list(items),
            delivery_fees=attribute_delivery_fee(items, delivery_fee_cents),
            shipping_address=shipping_address,
            payment_method_id=payment_method_id,
        )

    def setup_payment(self, run: CheckoutRun, card: str) -> CheckoutRun:
        """Save *card* as a reusable payment method for the run.

        Any failure aborts the run before any item is charged.
        """
        if run.state is not CheckoutState.IDLE:
            raise CheckoutError(f"Cannot set up payment from state {run.state.value}")

        run.state = CheckoutState.SETTING_UP_PAYMENT
        try:
            intent = self.payments.create_setup_intent(self.customer_id)
            confirmed = self.payments.confirm_setup_intent(intent["id"], card)
            if confirmed.get("status") != "succeeded" or not confirmed.get("payment_method"):
                raise PaymentError(f"Setup intent ended in status {confirmed.get('status')!r}")
            payment_method_id = confirmed["payment_method"]
            self.payments.attach_payment_method(payment_method_id, self.customer_id)
        except (MarketplaceDeliveryError, KeyError) as exc:
            logger.warning("Payment setup failed for customer %s: %s", self.customer_id, exc)
            run.state = CheckoutState.ABORTED
            run.error = f"Could not set up payment method: {exc}"
            return run

        run.payment_method_id = payment_method_id
        return run

    def _charge_item(self, run: CheckoutRun, item: CartLineItem, fee: int) -> str:
        """Initiate, pay and confirm one item. Returns the transaction id."""
        shipping_address = run.shipping_address if item.is_shipping else None
        transaction = self.marketplace.initiate_privileged(
            listing_id=item.listing_id,
            quantity=item.quantity,
            delivery_method=item.delivery_method.value if item.delivery_method else None,
            shipping_address=shipping_address,
            delivery_fee_cents=fee,
        )
        order_id = resource_id(transaction)

        protected_data = transaction.get("attributes", {}).get("protectedData") or {}
        intents = protected_data.get("stripePaymentIntents")
        if not intents or not intents.get("default", {}).get("stripePaymentIntentId"):
            raise PaymentError("Missing stripePaymentIntents in transaction protectedData")

        intent = self.payments.confirm_payment_intent(
            intents["default"]["stripePaymentIntentId"], run.payment_method_id
        )
        if intent.get("status") not in CONFIRMED_STATUSES:
            raise PaymentError(f"Payment not confirmed (status {intent.get('status')!r})")

        self.marketplace.transition_transaction(order_id, CONFIRM_PAYMENT_TRANSITION)
        return order_id

    def _request_delivery(self, item: CartLineItem, order_id: str) -> str | None:
        if not item.is_shipping or self.delivery_provider is None or not self.delivery_provider.is_configured():
            return None
        try:
            task = create_delivery_task(order_id, self.marketplace, self.delivery_provider)
        except MarketplaceDeliveryError as exc:
            logger.warning("Delivery task for transaction %s not created: %s", order_id, exc)
            return None
        except Exception:
            # The item is already paid for; a broken task must not undo that.
            logger.exception("Unexpected error creating delivery task for transaction %s", order_id)
            return None
        return task.tracking_url

    def process_next(self, run: CheckoutRun) -> CheckoutRun:
        """Check out the item at ``run.current_index``."""
        if run.is_finished or not run.has_pending_items:
            raise CheckoutError("No items left to process")
        if not run.payment_method_id:
            raise CheckoutError("A payment method must be set up before items are charged")

        run.state = CheckoutState.PROCESSING_ITEM
        index = run.current_index
        item = run.items[index]

        try:
            order_id = self._charge_item(run, item, run.delivery_fees[index])
        except MarketplaceDeliveryError as exc:
            logger.warning("Checkout failed for listing %s: %s", item.listing_id, exc)
            run.results.append(
                CheckoutItemResult(
                    listing_id=item.listing_id,
                    title=item.title,
                    success=False,
                    error=str(exc) or "Transaction failed",
                )
            )
            run.current_index += 1
            if index == 0:
                run.state = CheckoutState.ABORTED
                run.error = FIRST_ITEM_DECLINED
            return run

        run.results.append(
            CheckoutItemResult(
                listing_id=item.listing_id,
                title=item.title,
                success=True,
                order_id=order_id,
                tracking_url=self._request_delivery(item, order_id),
            )
        )
        run.current_index += 1
        return run

    def finish(self, run: CheckoutRun, cart: Cart) -> CheckoutRun:
        """Settle the cart once every item has been processed.

        Purchased items leave the cart; failed ones stay for a retry. An
        aborted run leaves the cart untouched.
        """
        if run.state is CheckoutState.ABORTED:
            return run
        if run.has_pending_items:
            raise CheckoutError("Cannot finish a run with unprocessed items")

        succeeded = run.succeeded_ids
        if len(succeeded) == len(run.items):
            cart.clear()
            run.state = CheckoutState.COMPLETED
        else:
            cart.remove_items(succeeded)
            run.state = CheckoutState.PARTIALLY_FAILED

        logger.info(
            "Checkout %s: %d succeeded, %d failed",
            run.state.value,
            len(succeeded),
            len(run.failed_ids),
        )
        return run

    def run(
        self,
        cart: Cart,
        card: str | None = None,
        delivery_fee_cents: int = 0,
        shipping_address: dict | None = None,
        payment_method_id: str | None = None,
    ) -> CheckoutRun:
        """Check out every item in *cart* and settle the cart.

        Args:
            cart: The buyer's cart; updated in place on completion.
            card: Card payment method used when no saved method is given.
            delivery_fee_cents: Cart-wide route fee, usually from a quote.
            shipping_address: Delivery address for shipping items.
            payment_method_id: A saved payment method to reuse.

        Returns:
            The finished run.
        """
        if not payment_method_id and not card:
            raise ValueError("Either a card or a saved payment method is required")

        run = self.start(
            cart.items,
            delivery_fee_cents=delivery_fee_cents,
            shipping_address=shipping_address,
            payment_method_id=payment_method_id,
        )
        if not run.payment_method_id:
            self.setup_payment(run, card)

        while not run.is_finished and run.has_pending_items:
            self.process_next(run)

        return self.finish(run, cart)
