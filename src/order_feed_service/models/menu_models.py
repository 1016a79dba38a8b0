"""Menu and table data models.

These are the read-side records the ordering core needs: menu items a customer
can add to a cart, and the tables orders are placed from. Editing them belongs
to the admin screens and is not handled here.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MenuItem(BaseModel):
    """Menu item model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the menu item")
    name: str = Field(..., description="Item name")
    description: str | None = Field(None, description="Item description")
    price: Decimal = Field(..., description="Item price", ge=0)
    category_id: str = Field(..., description="Category this item belongs to")
    is_available: bool = Field(default=True, description="Whether item is currently orderable")
    image_url: str | None = Field(None, description="URL to item image")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "MenuItem":
        """Create MenuItem from a store record.

        Args:
            record: Store record dictionary

        Returns:
            MenuItem: Parsed model instance
        """
        return cls(
            id=record["id"],
            name=record["name"],
            description=record.get("description"),
            price=Decimal(str(record.get("price", 0))),
            category_id=record.get("category_id", ""),
            is_available=record.get("is_available", True),
            image_url=record.get("image_url"),
        )


class Table(BaseModel):
    """Dining table that orders are placed from."""

    id: str = Field(..., description="Unique identifier for the table")
    number: int = Field(..., description="Table number printed on the QR card", ge=0)
    name: str = Field(default="", description="Optional display name")
    capacity: int = Field(default=4, description="Seat count", ge=0)
    is_active: bool = Field(default=True, description="Whether the table accepts orders")

    @property
    def display_name(self) -> str:
        """Name shown to staff, falling back to the table number."""
        return self.name or f"Table {self.number}"

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Table":
        """Create Table from a store record.

        Args:
            record: Store record dictionary

        Returns:
            Table: Parsed model instance
        """
        return cls(
            id=record["id"],
            number=int(record["number"]),
            name=record.get("name", ""),
            capacity=int(record.get("capacity", 4)),
            is_active=record.get("is_active", True),
        )
