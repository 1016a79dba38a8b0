"""Customer cart.

The cart keeps a frozen copy of each menu item as it was when added. Submitting
turns those copies into order lines, so editing a menu price afterwards cannot
change what an existing order says was charged.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from order_feed_service.errors import EmptyCartError, StoreUnavailableError
from order_feed_service.models.menu_models import MenuItem, Table
from order_feed_service.models.order_models import Order, OrderItem
from order_feed_service.observability import traced
from order_feed_service.observability.metrics import (
    record_order_submit_failure,
    record_order_submitted,
)
from order_feed_service.repositories.order_repositories import OrderRepository

logger = logging.getLogger(__name__)


@dataclass
class CartEntry:
    """A menu item snapshot and how many of it are selected."""

    item: MenuItem
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.item.price * self.quantity

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            menu_item_id=self.item.id,
            name=self.item.name,
            price=self.item.price,
            quantity=self.quantity,
        )


class Cart:
    """Quantity-keyed selection of menu items for one table session."""

    def __init__(self) -> None:
        self._entries: dict[str, CartEntry] = {}

    @property
    def entries(self) -> list[CartEntry]:
        """Entries in the order items were first added."""
        return list(self._entries.values())

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def quantity_of(self, item_id: str) -> int:
        entry = self._entries.get(item_id)
        return entry.quantity if entry else 0

    def add(self, item: MenuItem) -> int:
        """Add one unit of a menu item.

        Args:
            item: Menu item to add

        Returns:
            int: The item's quantity after adding

        Raises:
            ValueError: If the item is not currently available
        """
        if not item.is_available:
            raise ValueError(f"Menu item {item.id} is not available")

        entry = self._entries.get(item.id)
        if entry is None:
            entry = CartEntry(item=item.model_copy(), quantity=0)
            self._entries[item.id] = entry
        entry.quantity += 1
        return entry.quantity

    def remove(self, item_id: str) -> int:
        """Remove one unit of an item, dropping the entry when it reaches zero.

        Args:
            item_id: Menu item id

        Returns:
            int: The item's quantity after removing (0 if absent)
        """
        entry = self._entries.get(item_id)
        if entry is None:
            return 0

        if entry.quantity <= 1:
            del self._entries[item_id]
            return 0

        entry.quantity -= 1
        return entry.quantity

    def total(self) -> Decimal:
        """Sum of price times quantity."""
        return sum((entry.subtotal for entry in self._entries.values()), Decimal("0"))

    def item_count(self) -> int:
        """Sum of quantities."""
        return sum(entry.quantity for entry in self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    @traced("cart.submit")
    async def submit(self, table: Table, repository: OrderRepository) -> Order:
        """Place an order for everything in the cart.

        The cart is cleared only after the write succeeds. If the store is
        unavailable the cart is left as it was so the customer can retry.

        Args:
            table: Table the order is placed from
            repository: Order repository to write to

        Returns:
            Order: The stored order

        Raises:
            EmptyCartError: If the cart has no entries (no store call is made)
            StoreUnavailableError: If the write fails
        """
        if self.is_empty:
            record_order_submit_failure(EmptyCartError.__name__)
            raise EmptyCartError()

        order = Order.from_items(
            table_id=table.id,
            items=[entry.to_order_item() for entry in self._entries.values()],
            created_at=datetime.now(UTC),
            table_number=table.number,
            table_name=table.display_name,
        )

        try:
            stored = await repository.create_order(order)
        except StoreUnavailableError:
            logger.error(f"Order submission for table {table.id} failed, cart kept")
            record_order_submit_failure(StoreUnavailableError.__name__)
            raise

        self.clear()
        record_order_submitted(float(stored.total_amount))
        logger.info(f"Order {stored.id} placed for {table.display_name}: {stored.total_amount}")
        return stored
