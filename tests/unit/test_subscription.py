"""Unit tests for change feed subscriptions and snapshot diffing."""

import asyncio

import pytest

from order_feed_service.feed.subscription import Subscription, diff_snapshots
from order_feed_service.models.feed_models import ChangeType, DocumentSnapshot, FeedQuery


@pytest.mark.unit
class TestDiffSnapshots:
    """Test suite for diff_snapshots."""

    def test_first_delivery_tags_everything_added(self) -> None:
        """Test that diffing against nothing marks every record added."""
        current = {"a": {"id": "a"}, "b": {"id": "b"}}

        changes = diff_snapshots({}, current)

        assert [(c.type, c.doc_id) for c in changes] == [
            (ChangeType.ADDED, "a"),
            (ChangeType.ADDED, "b"),
        ]

    def test_detects_modified_and_removed(self) -> None:
        """Test modified and removed detection."""
        previous = {"a": {"id": "a", "status": "pending"}, "b": {"id": "b"}}
        current = {"a": {"id": "a", "status": "preparing"}, "c": {"id": "c"}}

        changes = diff_snapshots(previous, current)

        assert [(c.type, c.doc_id) for c in changes] == [
            (ChangeType.MODIFIED, "a"),
            (ChangeType.ADDED, "c"),
            (ChangeType.REMOVED, "b"),
        ]
        assert changes[2].data == {"id": "b"}

    def test_unchanged_snapshot_has_no_changes(self) -> None:
        """Test that identical views produce no changes."""
        view = {"a": {"id": "a", "status": "pending"}}

        assert diff_snapshots(view, dict(view)) == []


@pytest.mark.unit
class TestSubscription:
    """Test suite for Subscription."""

    @pytest.mark.asyncio
    async def test_delivers_in_publish_order(self) -> None:
        """Test that deliveries come out in the order they were published."""
        subscription = Subscription(FeedQuery(collection="orders"))
        first = DocumentSnapshot(documents=[{"id": "1"}])
        second = DocumentSnapshot(documents=[{"id": "1"}, {"id": "2"}])

        subscription.publish(first)
        subscription.publish(second)

        assert await subscription.__anext__() is first
        assert await subscription.__anext__() is second

    @pytest.mark.asyncio
    async def test_close_drops_queued_deliveries(self) -> None:
        """Test that a delivery queued before close is never handed out."""
        subscription = Subscription(FeedQuery(collection="orders"))
        subscription.publish(DocumentSnapshot(documents=[]))

        subscription.close()

        received = [snapshot async for snapshot in subscription]
        assert received == []

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self) -> None:
        """Test that a consumer blocked on the next delivery stops when closed."""
        subscription = Subscription(FeedQuery(collection="orders"))
        received: list[DocumentSnapshot] = []

        async def consume() -> None:
            async for snapshot in subscription:
                received.append(snapshot)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        subscription.close()
        await asyncio.wait_for(task, timeout=1)

        assert received == []

    def test_publish_after_close_rejected(self) -> None:
        """Test that publishing to a closed subscription is refused."""
        subscription = Subscription(FeedQuery(collection="orders"))
        subscription.close()

        assert subscription.publish(DocumentSnapshot(documents=[])) is False
        assert subscription.active is False

    def test_close_callback_runs_once(self) -> None:
        """Test that the on_close callback fires exactly once."""
        closed: list[Subscription] = []
        subscription = Subscription(FeedQuery(collection="orders"), on_close=closed.append)

        subscription.close()
        subscription.close()

        assert closed == [subscription]


@pytest.mark.unit
class TestFeedQuery:
    """Test suite for FeedQuery."""

    def test_no_status_filter_matches_everything(self) -> None:
        """Test that a query without statuses matches all records."""
        assert FeedQuery(collection="orders").matches({"status": "completed"})

    def test_status_filter(self) -> None:
        """Test filtering by status."""
        query = FeedQuery(collection="orders", statuses=frozenset({"pending", "preparing"}))

        assert query.matches({"status": "pending"})
        assert not query.matches({"status": "ready"})
        assert not query.matches({})
