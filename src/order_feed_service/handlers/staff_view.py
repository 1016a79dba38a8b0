"""Staff dashboard view.

One StaffDashboardView is one staff session. Each delivery runs the same
pipeline: recompute stats from the snapshot, ingest the changes into the
notification queue, then let the alert dispatcher compare pending counts.
"""

import logging
from datetime import UTC, datetime

from order_feed_service.feed.order_feed import FeedConsumer, FeedRegistration, OrderFeed
from order_feed_service.models.feed_models import Notification, OrderSnapshotEvent, OrderStats
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.services.aggregator import aggregate_orders
from order_feed_service.services.alert_dispatcher import AlertDispatcher
from order_feed_service.services.notification_service import NotificationQueue

logger = logging.getLogger(__name__)


class StaffDashboardView(FeedConsumer):
    """Derived order state for one staff session."""

    def __init__(
        self,
        notifications: NotificationQueue,
        dispatcher: AlertDispatcher,
        clock: type[datetime] = datetime,
    ) -> None:
        """Initialize the view.

        Args:
            notifications: This session's notification queue
            dispatcher: This session's alert dispatcher
            clock: Source of the current time, replaceable in tests
        """
        self.notifications = notifications
        self.dispatcher = dispatcher
        self.clock = clock
        self.stats = OrderStats()
        self.last_alert_at: datetime | None = None
        self.deliveries = 0
        self._orders: list[Order] = []
        self._registration: FeedRegistration | None = None
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def attach(self, feed: OrderFeed) -> None:
        """Register this view on a shared feed."""
        self._registration = feed.register(self)

    def close(self) -> None:
        """Tear the view down. Nothing delivered or played afterwards touches its state."""
        self._alive = False
        if self._registration is not None:
            self._registration.cancel()
            self._registration = None

    async def apply(self, event: OrderSnapshotEvent) -> None:
        if not self._alive:
            return

        now = self.clock.now(UTC)
        self._orders = sorted(event.orders, key=lambda o: o.created_at, reverse=True)
        self.stats = aggregate_orders(event.orders)
        self.notifications.ingest(event.changes, now=now)
        self.dispatcher.dispatch(self.stats.pending_orders, on_played=self._on_alert_played)
        self.deliveries += 1

        logger.debug(
            f"Applied delivery {self.deliveries}: {self.stats.total_orders} orders, "
            f"{self.stats.pending_orders} pending"
        )

    def orders(self, status: OrderStatusEnum | None = None) -> list[Order]:
        """Order board contents, newest first, optionally filtered by status."""
        if status is None:
            return list(self._orders)
        return [order for order in self._orders if order.status == status]

    def recent_orders(self, limit: int = 5) -> list[Order]:
        """The newest orders, for the dashboard's recent list."""
        return self._orders[:limit]

    @property
    def unread_notifications(self) -> list[Notification]:
        return [n for n in self.notifications.items if not n.read]

    def _on_alert_played(self) -> None:
        # Playback finishes after the await in the dispatcher; the view may be gone by then
        if not self._alive:
            return
        self.last_alert_at = self.clock.now(UTC)
