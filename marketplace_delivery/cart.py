"""The buyer's shopping cart."""

from marketplace_delivery.models import CartLineItem, DeliveryMethod


class Cart:
    """Ordered collection of cart line items, one per listing."""

    def __init__(self, items: list[CartLineItem] | None = None):
        self.items: list[CartLineItem] = list(items or [])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def get(self, listing_id: str) -> CartLineItem | None:
        return next((item for item in self.items if item.listing_id == listing_id), None)

    def add_item(
        self,
        listing_id: str,
        quantity: int = 1,
        delivery_method: DeliveryMethod | str | None = None,
        title: str = "",
    ) -> CartLineItem:
        """Add a listing, or increase its quantity if already in the cart."""
        existing = self.get(listing_id)
        if existing is not None:
            existing.quantity += quantity
            return existing
        item = CartLineItem(
            listing_id=listing_id,
            quantity=quantity,
            delivery_method=delivery_method,
            title=title,
        )
        self.items.append(item)
        return item

    def remove_item(self, listing_id: str) -> None:
        self.items = [item for item in self.items if item.listing_id != listing_id]

    def remove_items(self, listing_ids) -> None:
        drop = set(listing_ids)
        self.items = [item for item in self.items if item.listing_id not in drop]

    def update_quantity(self, listing_id: str, quantity: int) -> None:
        # Non-positive quantities and unknown listings are ignored.
        item = self.get(listing_id)
        if item is not None and quantity > 0:
            item.quantity = quantity

    def clear(self) -> None:
        self.items = []

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def listing_ids(self) -> list[str]:
        return [item.listing_id for item in self.items]
