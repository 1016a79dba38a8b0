"""Order aggregate statistics.

Stats are recomputed from the full snapshot on every delivery. There is no
incremental state to drift out of sync with the feed.
"""

from collections.abc import Iterable
from decimal import Decimal

from order_feed_service.models.feed_models import OrderStats
from order_feed_service.models.order_models import Order, OrderStatusEnum


def aggregate_orders(orders: Iterable[Order]) -> OrderStats:
    """Compute dashboard statistics for a snapshot of validated orders.

    Args:
        orders: Every order in the current snapshot

    Returns:
        OrderStats: Total and pending counts, revenue across all statuses, and
            the number of distinct tables holding a non-terminal order
    """
    total = 0
    pending = 0
    revenue = Decimal("0")
    active_tables: set[str] = set()

    for order in orders:
        total += 1
        revenue += order.total_amount
        if order.status == OrderStatusEnum.PENDING:
            pending += 1
        if not order.is_terminal:
            active_tables.add(order.table_id)

    return OrderStats(
        total_orders=total,
        pending_orders=pending,
        revenue=revenue,
        active_tables=len(active_tables),
    )

