"""Typed repositories over the document store.

These wrap the generic DocumentStore with the order, table and menu models so
callers never handle raw records. Reads validate at this boundary; writes go
through the models' to_record() so the stored shape stays consistent.
"""

import logging
from datetime import datetime

from order_feed_service.errors import OrderNotFoundError, RecordNotFoundError
from order_feed_service.models.menu_models import MenuItem, Table
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.stores.base_store import DocumentStore

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"
TABLES_COLLECTION = "tables"
MENU_COLLECTION = "menu_items"


class OrderRepository:
    """Repository for order records."""

    def __init__(self, store: DocumentStore, collection: str = ORDERS_COLLECTION) -> None:
        """Initialize repository.

        Args:
            store: Backing document store
            collection: Collection holding orders
        """
        self.store = store
        self.collection = collection

    async def create_order(self, order: Order) -> Order:
        """Write a new order.

        Args:
            order: Unsaved order (id is ignored)

        Returns:
            Order: The stored order with its assigned id

        Raises:
            StoreUnavailableError: If the write fails
        """
        record = order.to_record()
        record.pop("id", None)

        order_id = await self.store.create(self.collection, record)
        logger.info(f"Created order {order_id} for table {order.table_id}")
        return order.model_copy(update={"id": order_id})

    async def get_order(self, order_id: str) -> Order | None:
        """Retrieve an order by id.

        Args:
            order_id: Order identifier

        Returns:
            Order if found, None otherwise

        Raises:
            StoreUnavailableError: If the read fails
        """
        record = await self.store.get(self.collection, order_id)
        if record is None:
            return None
        return Order.from_record(record)

    async def update_status(
        self,
        order_id: str,
        status: OrderStatusEnum,
        updated_at: datetime,
        expected: OrderStatusEnum | None = None,
    ) -> None:
        """Set an order's status and update timestamp, leaving every other field untouched.

        Args:
            order_id: Order identifier
            status: New status
            updated_at: Transition timestamp
            expected: Status the order must still have for the write to apply

        Raises:
            OrderNotFoundError: If the order does not exist
            RecordConflictError: If the stored status is no longer expected
            StoreUnavailableError: If the write fails
        """
        try:
            await self.store.update(
                self.collection,
                order_id,
                {"status": status.value, "updated_at": updated_at.isoformat()},
                expected={"status": expected.value} if expected is not None else None,
            )
        except RecordNotFoundError as e:
            raise OrderNotFoundError(order_id) from e


class TableRepository:
    """Read access to dining tables."""

    def __init__(self, store: DocumentStore, collection: str = TABLES_COLLECTION) -> None:
        self.store = store
        self.collection = collection

    async def get_table(self, table_id: str) -> Table | None:
        """Retrieve a table by id, or None if it does not exist."""
        record = await self.store.get(self.collection, table_id)
        return Table.from_record(record) if record is not None else None


class MenuRepository:
    """Read access to menu items."""

    def __init__(self, store: DocumentStore, collection: str = MENU_COLLECTION) -> None:
        self.store = store
        self.collection = collection

    async def get_item(self, item_id: str) -> MenuItem | None:
        """Retrieve a menu item by id, or None if it does not exist."""
        record = await self.store.get(self.collection, item_id)
        return MenuItem.from_record(record) if record is not None else None
