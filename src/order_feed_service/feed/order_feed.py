"""Shared order feed.

One OrderFeed owns a single store subscription and fans every delivery out to
its registered consumers. Views register here instead of opening their own
subscriptions, so a restaurant with a dashboard, an order board and a
notification bell open still pays for one listener.

Deliveries are applied strictly one at a time: every consumer finishes with
delivery N before any consumer sees delivery N+1.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

from order_feed_service.feed.subscription import Subscription
from order_feed_service.models.feed_models import (
    ChangeType,
    DocumentSnapshot,
    FeedQuery,
    OrderChange,
    OrderSnapshotEvent,
)
from order_feed_service.models.order_models import Order
from order_feed_service.observability.metrics import record_invalid_record
from order_feed_service.stores.base_store import DocumentStore

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (KeyError, ValueError, TypeError, ArithmeticError)


class FeedConsumer(ABC):
    """Anything that derives state from order feed deliveries."""

    @abstractmethod
    async def apply(self, event: OrderSnapshotEvent) -> None:
        """Apply one delivery.

        Args:
            event: Validated snapshot and changes
        """


class FeedRegistration:
    """Handle for a consumer registered on an OrderFeed."""

    def __init__(self, feed: "OrderFeed", consumer: FeedConsumer) -> None:
        self.feed = feed
        self.consumer = consumer
        self.deliveries = 0
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivering to this consumer. Takes effect before the next delivery."""
        if not self._active:
            return
        self._active = False
        self.feed._unregister(self)


def parse_order(record: dict) -> Order | None:
    """Validate a raw record into an Order, or None if it is malformed."""
    try:
        return Order.from_record(record)
    except _PARSE_ERRORS as e:
        logger.warning(f"Rejected malformed order record {record.get('id')!r}: {e}")
        record_invalid_record("orders")
        return None


def to_order_event(snapshot: DocumentSnapshot) -> OrderSnapshotEvent:
    """Validate a raw delivery at the store boundary.

    Records that fail validation are left out of both the snapshot and the
    change list.

    Args:
        snapshot: Raw store delivery

    Returns:
        OrderSnapshotEvent: Delivery with typed orders only
    """
    orders: list[Order] = []
    rejected = 0
    for record in snapshot.documents:
        order = parse_order(record)
        if order is None:
            rejected += 1
        else:
            orders.append(order)

    by_id = {order.id: order for order in orders}
    changes: list[OrderChange] = []
    for change in snapshot.changes:
        order = by_id.get(change.doc_id)
        if order is None and change.type == ChangeType.REMOVED:
            order = parse_order(change.data)
        if order is not None:
            changes.append(OrderChange(type=change.type, order=order))

    return OrderSnapshotEvent(orders=orders, changes=changes, rejected=rejected)


def initial_event(event: OrderSnapshotEvent) -> OrderSnapshotEvent:
    """Re-tag a snapshot as a first delivery, with every order added."""
    return OrderSnapshotEvent(
        orders=list(event.orders),
        changes=[OrderChange(type=ChangeType.ADDED, order=order) for order in event.orders],
        rejected=event.rejected,
    )


class OrderFeed:
    """Single shared subscription to the order collection."""

    def __init__(self, store: DocumentStore, query: FeedQuery | None = None) -> None:
        """Initialize the feed.

        Args:
            store: Store to subscribe to
            query: Collection and filter (defaults to every order)
        """
        self.store = store
        self.query = query or FeedQuery(collection="orders")
        self.deliveries = 0
        self.last_event: OrderSnapshotEvent | None = None
        self._registrations: list[FeedRegistration] = []
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._catch_ups: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def consumer_count(self) -> int:
        return len(self._registrations)

    @property
    def pending_catch_ups(self) -> int:
        """Late registrations still waiting for their first snapshot."""
        return len(self._catch_ups)

    def register(self, consumer: FeedConsumer) -> FeedRegistration:
        """Register a consumer.

        A consumer joining a running feed is first brought up to date with the
        latest snapshot, delivered as if it were a fresh subscription.

        Args:
            consumer: Consumer to deliver to

        Returns:
            FeedRegistration: Handle used to unregister
        """
        registration = FeedRegistration(self, consumer)
        self._registrations.append(registration)

        if self.last_event is not None:
            task = asyncio.get_running_loop().create_task(self._catch_up(registration))
            self._catch_ups.add(task)
            task.add_done_callback(self._catch_ups.discard)

        return registration

    def start(self) -> None:
        """Open the store subscription. Must be called from a running event loop."""
        if self.running:
            return
        self._subscription = self.store.subscribe(self.query)
        self._task = asyncio.create_task(self._run(self._subscription))
        logger.info(f"Order feed started on {self.query.collection}")

    def stop(self) -> None:
        """Close the subscription. Queued deliveries are dropped."""
        if self._subscription is not None:
            self._subscription.close()
            logger.info(f"Order feed stopped after {self.deliveries} deliveries")

    async def wait_stopped(self) -> None:
        """Wait for the delivery task and any pending catch-ups to finish after stop()."""
        if self._task is not None:
            await self._task
        if self._catch_ups:
            await asyncio.gather(*list(self._catch_ups))

    async def process(self, event: OrderSnapshotEvent) -> None:
        """Apply one delivery to every active consumer, in registration order.

        A consumer that raises is logged and skipped; the others still receive
        the delivery.
        """
        async with self._lock:
            self.deliveries += 1
            self.last_event = event

            for registration in list(self._registrations):
                await self._deliver(registration, event)

    async def _deliver(self, registration: FeedRegistration, event: OrderSnapshotEvent) -> None:
        if not registration.active:
            return
        try:
            await registration.consumer.apply(event)
            registration.deliveries += 1
        except Exception as e:
            logger.exception(
                f"Consumer {type(registration.consumer).__name__} failed on delivery: {e}"
            )

    async def _catch_up(self, registration: FeedRegistration) -> None:
        async with self._lock:
            if self.last_event is not None and registration.deliveries == 0:
                await self._deliver(registration, initial_event(self.last_event))

    async def _run(self, subscription: Subscription) -> None:
        async for snapshot in subscription:
            event = to_order_event(snapshot)
            if event.rejected:
                logger.warning(f"{event.rejected} order record(s) excluded from delivery")
            await self.process(event)

    def _unregister(self, registration: FeedRegistration) -> None:
        self._registrations = [r for r in self._registrations if r is not registration]
