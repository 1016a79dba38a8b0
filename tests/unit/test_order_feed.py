"""Unit tests for the shared order feed."""

import asyncio
import gc
from typing import Any

import pytest

from order_feed_service.feed.order_feed import (
    FeedConsumer,
    OrderFeed,
    initial_event,
    to_order_event,
)
from order_feed_service.models.feed_models import (
    ChangeType,
    DocumentChange,
    DocumentSnapshot,
    OrderSnapshotEvent,
)
from order_feed_service.stores.memory_store import InMemoryDocumentStore


async def settle() -> None:
    """Let queued deliveries and background tasks run."""
    for _ in range(20):
        await asyncio.sleep(0)


class RecordingConsumer(FeedConsumer):
    """Consumer that records every delivery it receives."""

    def __init__(self, delay: float = 0.0, log: list[str] | None = None, name: str = "c") -> None:
        self.events: list[OrderSnapshotEvent] = []
        self.delay = delay
        self.log = log if log is not None else []
        self.name = name

    async def apply(self, event: OrderSnapshotEvent) -> None:
        self.log.append(f"{self.name}:start:{len(event.orders)}")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.events.append(event)
        self.log.append(f"{self.name}:end:{len(event.orders)}")


class FailingConsumer(FeedConsumer):
    """Consumer that always raises."""

    async def apply(self, event: OrderSnapshotEvent) -> None:
        raise RuntimeError("boom")


@pytest.mark.unit
class TestToOrderEvent:
    """Test suite for boundary validation of raw deliveries."""

    def test_malformed_records_excluded(self, make_order_record: Any) -> None:
        """Test that records failing validation are dropped and counted."""
        good = make_order_record("ord_1")
        bad = make_order_record("ord_2", status="unknown")
        snapshot = DocumentSnapshot(
            documents=[good, bad],
            changes=[
                DocumentChange(type=ChangeType.ADDED, doc_id="ord_1", data=good),
                DocumentChange(type=ChangeType.ADDED, doc_id="ord_2", data=bad),
            ],
        )

        event = to_order_event(snapshot)

        assert [o.id for o in event.orders] == ["ord_1"]
        assert [c.order.id for c in event.changes] == ["ord_1"]
        assert event.rejected == 1

    def test_removed_change_parsed_from_change_data(self, make_order_record: Any) -> None:
        """Test that removed records, absent from the snapshot, still appear as changes."""
        gone = make_order_record("ord_9", status="preparing")
        snapshot = DocumentSnapshot(
            documents=[],
            changes=[DocumentChange(type=ChangeType.REMOVED, doc_id="ord_9", data=gone)],
        )

        event = to_order_event(snapshot)

        assert event.orders == []
        assert [(c.type, c.order.id) for c in event.changes] == [(ChangeType.REMOVED, "ord_9")]

    def test_initial_event_tags_all_added(self, make_order_record: Any) -> None:
        """Test re-tagging a snapshot as a first delivery."""
        record = make_order_record("ord_1")
        event = to_order_event(
            DocumentSnapshot(
                documents=[record],
                changes=[DocumentChange(type=ChangeType.MODIFIED, doc_id="ord_1", data=record)],
            )
        )

        replay = initial_event(event)

        assert [(c.type, c.order.id) for c in replay.changes] == [(ChangeType.ADDED, "ord_1")]


@pytest.mark.unit
class TestOrderFeed:
    """Test suite for OrderFeed."""

    @pytest.fixture
    def store(self, make_order_record: Any) -> InMemoryDocumentStore:
        """Create a store seeded with one order."""
        return InMemoryDocumentStore(seed={"orders": [make_order_record("ord_1")]})

    @pytest.mark.asyncio
    async def test_single_subscription_for_many_consumers(
        self, store: InMemoryDocumentStore
    ) -> None:
        """Test that every consumer receives deliveries through one store subscription."""
        feed = OrderFeed(store)
        consumers = [RecordingConsumer(name=str(i)) for i in range(3)]
        for consumer in consumers:
            feed.register(consumer)

        feed.start()
        await settle()

        assert store.subscription_count == 1
        assert all(len(c.events) == 1 for c in consumers)
        feed.stop()

    @pytest.mark.asyncio
    async def test_deliveries_follow_commits(
        self, store: InMemoryDocumentStore, make_order_record: Any
    ) -> None:
        """Test that each commit reaches consumers as its own delivery, in order."""
        feed = OrderFeed(store)
        consumer = RecordingConsumer()
        feed.register(consumer)
        feed.start()
        await settle()

        record = make_order_record("ord_2")
        del record["id"]
        await store.create("orders", record)
        await store.update("orders", "ord_1", {"status": "preparing"})
        await settle()

        assert [len(e.orders) for e in consumer.events] == [1, 2, 2]
        assert consumer.events[2].changes[0].type == ChangeType.MODIFIED
        assert feed.deliveries == 3
        feed.stop()

    @pytest.mark.asyncio
    async def test_deliveries_never_overlap(self, make_order_record: Any) -> None:
        """Test that a slow consumer finishes one delivery before the next starts."""
        feed = OrderFeed(InMemoryDocumentStore())
        log: list[str] = []
        feed.register(RecordingConsumer(delay=0.01, log=log, name="a"))
        feed.register(RecordingConsumer(log=log, name="b"))
        first = OrderSnapshotEvent(orders=[], changes=[])
        second = to_order_event(DocumentSnapshot(documents=[make_order_record("ord_1")]))

        await asyncio.gather(feed.process(first), feed.process(second))

        assert log == [
            "a:start:0",
            "a:end:0",
            "b:start:0",
            "b:end:0",
            "a:start:1",
            "a:end:1",
            "b:start:1",
            "b:end:1",
        ]

    @pytest.mark.asyncio
    async def test_cancelled_registration_receives_nothing(
        self, store: InMemoryDocumentStore
    ) -> None:
        """Test that a cancelled consumer gets no further deliveries."""
        feed = OrderFeed(store)
        consumer = RecordingConsumer()
        registration = feed.register(consumer)

        registration.cancel()
        feed.start()
        await settle()

        assert consumer.events == []
        assert feed.consumer_count == 0
        feed.stop()

    @pytest.mark.asyncio
    async def test_failing_consumer_does_not_block_others(
        self, store: InMemoryDocumentStore
    ) -> None:
        """Test that one consumer raising leaves the others and the feed running."""
        feed = OrderFeed(store)
        feed.register(FailingConsumer())
        consumer = RecordingConsumer()
        feed.register(consumer)

        feed.start()
        await settle()
        await store.update("orders", "ord_1", {"status": "preparing"})
        await settle()

        assert len(consumer.events) == 2
        assert feed.running
        feed.stop()

    @pytest.mark.asyncio
    async def test_late_consumer_catches_up(self, store: InMemoryDocumentStore) -> None:
        """Test that a consumer joining a running feed gets the current state as added."""
        feed = OrderFeed(store)
        feed.register(RecordingConsumer())
        feed.start()
        await settle()

        late = RecordingConsumer()
        feed.register(late)
        await settle()

        assert len(late.events) == 1
        assert [c.type for c in late.events[0].changes] == [ChangeType.ADDED]
        feed.stop()

    @pytest.mark.asyncio
    async def test_catch_up_task_is_held_until_done(self, store: InMemoryDocumentStore) -> None:
        """Test that a pending catch-up survives garbage collection and is drained on stop."""
        feed = OrderFeed(store)
        feed.register(RecordingConsumer())
        feed.start()
        await settle()

        late = RecordingConsumer(delay=0.01)
        feed.register(late)
        gc.collect()

        assert feed.pending_catch_ups == 1

        feed.stop()
        await asyncio.wait_for(feed.wait_stopped(), timeout=1)

        assert len(late.events) == 1
        assert feed.pending_catch_ups == 0

    @pytest.mark.asyncio
    async def test_stop_ends_delivery(self, store: InMemoryDocumentStore) -> None:
        """Test that stopping closes the subscription and the delivery task ends."""
        feed = OrderFeed(store)
        consumer = RecordingConsumer()
        feed.register(consumer)
        feed.start()
        await settle()

        feed.stop()
        await store.update("orders", "ord_1", {"status": "preparing"})
        await asyncio.wait_for(feed.wait_stopped(), timeout=1)

        assert len(consumer.events) == 1
        assert not feed.running
        assert store.subscription_count == 0
