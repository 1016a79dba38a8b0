"""Change feed, aggregate and notification models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from order_feed_service.models.order_models import Order


class ChangeType(str, Enum):
    """Kind of change carried in a feed delivery."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class FeedQuery:
    """Filter for a change feed subscription.

    Attributes:
        collection: Collection to watch (e.g. "orders")
        statuses: Only records whose status is in this set, or all records if None
    """

    collection: str
    statuses: frozenset[str] | None = None

    def matches(self, record: dict[str, Any]) -> bool:
        if self.statuses is None:
            return True
        return record.get("status") in self.statuses


@dataclass(frozen=True)
class DocumentChange:
    """One incremental change to a raw store record."""

    type: ChangeType
    doc_id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class DocumentSnapshot:
    """A feed delivery: every matching record plus the changes since the previous delivery."""

    documents: list[dict[str, Any]]
    changes: list[DocumentChange] = field(default_factory=list)


@dataclass(frozen=True)
class OrderChange:
    """An incremental change whose record parsed into a valid Order."""

    type: ChangeType
    order: Order


@dataclass(frozen=True)
class OrderSnapshotEvent:
    """A feed delivery after validation at the store boundary.

    Attributes:
        orders: Every valid order in the current snapshot
        changes: Valid incremental changes since the previous delivery
        rejected: Number of records dropped because they failed validation
    """

    orders: list[Order]
    changes: list[OrderChange]
    rejected: int = 0


class OrderStats(BaseModel):
    """Aggregate statistics over an order snapshot."""

    total_orders: int = Field(default=0, description="Number of orders in the snapshot", ge=0)
    pending_orders: int = Field(default=0, description="Orders with status pending", ge=0)
    revenue: Decimal = Field(default=Decimal("0"), description="Sum of order totals")
    active_tables: int = Field(
        default=0, description="Distinct tables with a non-terminal order", ge=0
    )


class Notification(BaseModel):
    """A new-order notification held in a staff session.

    The id is the originating order id, which guarantees at most one
    notification per order.
    """

    id: str = Field(..., description="Originating order id")
    message: str = Field(..., description="Human-readable notification text")
    amount: Decimal = Field(default=Decimal("0"), description="Order total")
    created_at: datetime = Field(..., description="When the notification was created")
    read: bool = Field(default=False, description="Whether staff have seen it")
