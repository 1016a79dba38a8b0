"""Order models.

Orders are validated here at the store boundary. A record that cannot be parsed
into an Order is rejected rather than partially read, so malformed or
half-written documents never reach the aggregate counts.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatusEnum(str, Enum):
    """Enumeration of order status values, in lifecycle order."""

    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"


TERMINAL_STATUSES = frozenset({OrderStatusEnum.COMPLETED})


class OrderItem(BaseModel):
    """A line on an order, frozen at submission time."""

    model_config = ConfigDict(frozen=True)

    menu_item_id: str = Field(..., description="Menu item this line was created from")
    name: str = Field(..., description="Item name at submission time")
    price: Decimal = Field(..., description="Unit price at submission time", ge=0)
    quantity: int = Field(..., description="Number of units ordered", ge=1)

    @property
    def line_total(self) -> Decimal:
        """Price times quantity."""
        return self.price * self.quantity

    def to_record(self) -> dict[str, Any]:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "OrderItem":
        return cls(
            menu_item_id=record.get("menu_item_id", ""),
            name=record["name"],
            price=Decimal(str(record.get("price", 0))),
            quantity=int(record.get("quantity", 1)),
        )


class Order(BaseModel):
    """A customer's submitted selection tied to a table.

    Items and total_amount are a snapshot taken when the order was placed.
    Only status and updated_at change afterwards.
    """

    id: str | None = Field(None, description="Store-assigned order identifier")
    table_id: str = Field(..., description="Table the order was placed from")
    table_number: int | None = Field(None, description="Table number at submission time")
    table_name: str = Field(default="", description="Table display name at submission time")
    items: list[OrderItem] = Field(default_factory=list, description="Ordered items")
    total_amount: Decimal = Field(default=Decimal("0"), description="Order total", ge=0)
    status: OrderStatusEnum = Field(default=OrderStatusEnum.PENDING, description="Order status")
    created_at: datetime = Field(..., description="Submission timestamp")
    updated_at: datetime | None = Field(None, description="Last status change timestamp")

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def display_table(self) -> str:
        """Table label used in staff-facing messages."""
        if self.table_name:
            return self.table_name
        if self.table_number is not None:
            return f"Table {self.table_number}"
        return f"Table {self.table_id}"

    @classmethod
    def from_items(
        cls,
        table_id: str,
        items: list[OrderItem],
        created_at: datetime,
        table_number: int | None = None,
        table_name: str = "",
    ) -> "Order":
        """Build a new pending order whose total is computed from its items.

        Args:
            table_id: Table the order is placed from
            items: Frozen order lines
            created_at: Submission timestamp
            table_number: Table number snapshot
            table_name: Table display name snapshot

        Returns:
            Order: Unsaved order with no id
        """
        return cls(
            table_id=table_id,
            table_number=table_number,
            table_name=table_name,
            items=list(items),
            total_amount=sum((item.line_total for item in items), Decimal("0")),
            status=OrderStatusEnum.PENDING,
            created_at=created_at,
            updated_at=created_at,
        )

    def to_record(self) -> dict[str, Any]:
        """Convert to store record format.

        Returns:
            dict: Store-compatible representation (id omitted when unsaved)
        """
        record: dict[str, Any] = {
            "table_id": self.table_id,
            "table_name": self.table_name,
            "items": [item.to_record() for item in self.items],
            "total_amount": self.total_amount,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }

        if self.id is not None:
            record["id"] = self.id

        if self.table_number is not None:
            record["table_number"] = self.table_number

        if self.updated_at is not None:
            record["updated_at"] = self.updated_at.isoformat()

        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Order":
        """Create Order from a store record.

        Missing totals are read as zero. Missing ids, statuses or creation
        timestamps are not tolerated.

        Args:
            record: Store record dictionary

        Returns:
            Order: Parsed model instance

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field holds an invalid value
        """
        data: dict[str, Any] = {
            "id": record["id"],
            "table_id": str(record["table_id"]),
            "table_name": record.get("table_name") or "",
            "items": [OrderItem.from_record(item) for item in record.get("items") or []],
            "total_amount": Decimal(str(record.get("total_amount") or 0)),
            "status": OrderStatusEnum(record["status"]),
            "created_at": _parse_timestamp(record["created_at"]),
        }

        if record.get("table_number") is not None:
            data["table_number"] = int(record["table_number"])

        if record.get("updated_at") is not None:
            data["updated_at"] = _parse_timestamp(record["updated_at"])

        return cls(**data)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
