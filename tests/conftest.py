"""Shared pytest fixtures and configuration for all tests."""

import os

os.environ.setdefault("ENVIRONMENT", "test")

from datetime import UTC, datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402

from order_feed_service.models.menu_models import MenuItem, Table  # noqa: E402


@pytest.fixture
def now() -> datetime:
    """Fixture providing a fixed, timezone-aware current time."""
    return datetime(2024, 1, 15, 18, 30, tzinfo=UTC)


@pytest.fixture
def burger() -> MenuItem:
    """Fixture providing an available menu item."""
    return MenuItem(
        id="item_1",
        name="Cheeseburger",
        description="Classic beef cheeseburger",
        price=Decimal("12.99"),
        category_id="cat_1",
        is_available=True,
    )


@pytest.fixture
def salad() -> MenuItem:
    """Fixture providing a second available menu item."""
    return MenuItem(
        id="item_2",
        name="Caesar Salad",
        description="Fresh romaine with caesar dressing",
        price=Decimal("9.50"),
        category_id="cat_2",
        is_available=True,
    )


@pytest.fixture
def table() -> Table:
    """Fixture providing an active dining table."""
    return Table(id="table_7", number=7, name="", capacity=4, is_active=True)


@pytest.fixture
def make_order_record(now: datetime) -> Any:
    """Factory fixture building raw order records as the store holds them."""

    def _make(
        order_id: str,
        status: str = "pending",
        table_id: str = "table_7",
        total: str | None = "25.98",
        age: timedelta = timedelta(0),
        **extra: Any,
    ) -> dict[str, Any]:
        created_at = now - age
        record: dict[str, Any] = {
            "id": order_id,
            "table_id": table_id,
            "table_number": 7,
            "table_name": "Table 7",
            "items": [
                {
                    "menu_item_id": "item_1",
                    "name": "Cheeseburger",
                    "price": Decimal("12.99"),
                    "quantity": 2,
                }
            ],
            "status": status,
            "created_at": created_at.isoformat(),
            "updated_at": created_at.isoformat(),
        }
        if total is not None:
            record["total_amount"] = Decimal(total)
        record.update(extra)
        return record

    return _make
