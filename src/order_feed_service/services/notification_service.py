"""New-order notification queue.

A staff session keeps one NotificationQueue. Each feed delivery's changes are
ingested; only freshly added pending orders inside the recency window produce
a notification, and each order produces at most one.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from order_feed_service.models.feed_models import ChangeType, Notification, OrderChange
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.observability.metrics import record_notifications

logger = logging.getLogger(__name__)

DEFAULT_RECENCY_WINDOW = timedelta(minutes=5)
DEFAULT_MAX_SIZE = 10


class NotificationQueue:
    """Ordered, deduplicated queue of new-order notifications, newest first."""

    def __init__(
        self,
        recency_window: timedelta = DEFAULT_RECENCY_WINDOW,
        max_size: int | None = DEFAULT_MAX_SIZE,
    ) -> None:
        """Initialize the queue.

        Args:
            recency_window: How old an order may be and still notify
            max_size: Maximum number of notifications kept, or None for no bound
        """
        self.recency_window = recency_window
        self.max_size = max_size
        self._items: list[Notification] = []
        # Order id -> created_at for every order notified this session, including
        # dismissed and evicted ones, until it ages out of the recency window
        self._seen: dict[str, datetime] = {}

    @property
    def items(self) -> list[Notification]:
        """Notifications, newest first."""
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def tracked_order_count(self) -> int:
        """Order ids still remembered for deduplication."""
        return len(self._seen)

    def is_eligible(self, change: OrderChange, now: datetime) -> bool:
        """Whether a change should produce a notification, ignoring dedup.

        Historic orders surfaced by a late subscribe or a reconnect arrive as
        added too; the recency window keeps them quiet.
        """
        if change.type != ChangeType.ADDED:
            return False
        order = change.order
        if order.status != OrderStatusEnum.PENDING:
            return False
        return now - order.created_at <= self.recency_window

    def ingest(
        self, changes: Iterable[OrderChange], now: datetime | None = None
    ) -> list[Notification]:
        """Add notifications for a delivery's changes.

        Args:
            changes: Incremental changes from one delivery
            now: Current time (defaults to the wall clock)

        Returns:
            list: The notifications actually added, in delivery order
        """
        now = now or datetime.now(UTC)
        self._forget_expired(now)
        batch: list[Notification] = []

        for change in changes:
            if not self.is_eligible(change, now):
                continue
            order_id = change.order.id
            if order_id is None or order_id in self._seen:
                continue
            self._seen[order_id] = change.order.created_at
            batch.append(self._build(change.order, now))

        if batch:
            self._items = batch + self._items
            if self.max_size is not None:
                del self._items[self.max_size :]
            record_notifications(len(batch))
            logger.info(f"Queued {len(batch)} new order notification(s)")

        return batch

    def mark_read(self, notification_id: str) -> bool:
        """Mark one notification read. Returns False if it is not queued."""
        for index, notification in enumerate(self._items):
            if notification.id == notification_id:
                self._items[index] = notification.model_copy(update={"read": True})
                return True
        return False

    def mark_all_read(self) -> int:
        """Mark every notification read without removing any.

        Returns:
            int: Number of notifications that were unread
        """
        changed = self.unread_count
        self._items = [n.model_copy(update={"read": True}) for n in self._items]
        return changed

    def dismiss(self, notification_id: str) -> bool:
        """Remove one notification. Returns False if it is not queued."""
        remaining = [n for n in self._items if n.id != notification_id]
        removed = len(remaining) != len(self._items)
        self._items = remaining
        return removed

    def dismiss_all(self) -> int:
        """Remove every notification.

        Returns:
            int: Number of notifications removed
        """
        count = len(self._items)
        self._items = []
        return count

    def _forget_expired(self, now: datetime) -> None:
        # created_at never changes, so an id past the window can never notify again
        expired = [
            order_id
            for order_id, created_at in self._seen.items()
            if now - created_at > self.recency_window
        ]
        for order_id in expired:
            del self._seen[order_id]

    @staticmethod
    def _build(order: Order, now: datetime) -> Notification:
        return Notification(
            id=order.id or "",
            message=f"New order from {order.display_table}",
            amount=order.total_amount,
            created_at=now,
            read=False,
        )
