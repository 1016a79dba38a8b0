"""Unit tests for the order status state machine."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from order_feed_service.errors import InvalidTransitionError, OrderNotFoundError
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.repositories.order_repositories import OrderRepository
from order_feed_service.services.order_status_service import (
    OrderStatusService,
    can_transition,
    next_status,
)
from order_feed_service.stores.memory_store import InMemoryDocumentStore


@pytest.mark.unit
class TestTransitionRules:
    """Test suite for the transition table."""

    def test_next_status_sequence(self) -> None:
        """Test the linear successor of each status."""
        assert next_status(OrderStatusEnum.PENDING) == OrderStatusEnum.PREPARING
        assert next_status(OrderStatusEnum.PREPARING) == OrderStatusEnum.READY
        assert next_status(OrderStatusEnum.READY) == OrderStatusEnum.COMPLETED
        assert next_status(OrderStatusEnum.COMPLETED) is None

    @pytest.mark.parametrize(
        ("current", "requested"),
        [
            (OrderStatusEnum.PENDING, OrderStatusEnum.COMPLETED),
            (OrderStatusEnum.PENDING, OrderStatusEnum.READY),
            (OrderStatusEnum.PENDING, OrderStatusEnum.PENDING),
            (OrderStatusEnum.READY, OrderStatusEnum.PREPARING),
            (OrderStatusEnum.COMPLETED, OrderStatusEnum.PENDING),
        ],
    )
    def test_invalid_transitions(
        self, current: OrderStatusEnum, requested: OrderStatusEnum
    ) -> None:
        """Test that skips, repeats, and backward moves are invalid."""
        assert can_transition(current, requested) is False


@pytest.mark.unit
class TestOrderStatusService:
    """Test suite for OrderStatusService."""

    @pytest.fixture
    def mock_repository(self, make_order_record: Any) -> MagicMock:
        """Create a mock repository holding one pending order."""
        repository = MagicMock(spec=OrderRepository)
        repository.get_order = AsyncMock(
            return_value=Order.from_record(make_order_record("ord_1", status="pending"))
        )
        repository.update_status = AsyncMock(return_value=None)
        return repository

    @pytest.mark.asyncio
    async def test_advance_to_successor(self, mock_repository: MagicMock, now: datetime) -> None:
        """Test that requesting the next status writes status and a fresh timestamp."""
        service = OrderStatusService(mock_repository)

        order = await service.advance("ord_1", OrderStatusEnum.PREPARING)

        assert order.status == OrderStatusEnum.PREPARING
        order_id, status, updated_at = mock_repository.update_status.call_args[0]
        assert (order_id, status) == ("ord_1", OrderStatusEnum.PREPARING)
        assert updated_at > now
        assert order.updated_at == updated_at

    @pytest.mark.asyncio
    async def test_write_is_guarded_by_status_read(self, mock_repository: MagicMock) -> None:
        """Test that the status write only applies if the order is still in the status read."""
        service = OrderStatusService(mock_repository)

        await service.advance("ord_1", OrderStatusEnum.PREPARING)

        assert mock_repository.update_status.call_args.kwargs == {
            "expected": OrderStatusEnum.PENDING
        }

    @pytest.mark.asyncio
    async def test_skip_rejected_without_write(self, mock_repository: MagicMock) -> None:
        """Test that pending -> completed is rejected and nothing is written."""
        service = OrderStatusService(mock_repository)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.advance("ord_1", OrderStatusEnum.COMPLETED)

        assert exc_info.value.current == "pending"
        assert exc_info.value.requested == "completed"
        mock_repository.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_order(self, mock_repository: MagicMock) -> None:
        """Test that unknown orders raise OrderNotFoundError."""
        mock_repository.get_order = AsyncMock(return_value=None)
        service = OrderStatusService(mock_repository)

        with pytest.raises(OrderNotFoundError):
            await service.advance("ord_x", OrderStatusEnum.PREPARING)

    @pytest.mark.asyncio
    async def test_completed_is_terminal(
        self, mock_repository: MagicMock, make_order_record: Any
    ) -> None:
        """Test that a completed order cannot advance."""
        mock_repository.get_order = AsyncMock(
            return_value=Order.from_record(make_order_record("ord_1", status="completed"))
        )
        service = OrderStatusService(mock_repository)

        with pytest.raises(InvalidTransitionError):
            await service.advance_to_next("ord_1")

        mock_repository.update_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_stored_status_unchanged_after_rejection(self, make_order_record: Any) -> None:
        """Test against a real store that a rejected transition leaves the record as it was."""
        record = make_order_record("ord_1", status="pending")
        store = InMemoryDocumentStore(seed={"orders": [record]})
        service = OrderStatusService(OrderRepository(store))

        with pytest.raises(InvalidTransitionError):
            await service.advance("ord_1", OrderStatusEnum.COMPLETED)

        assert await store.get("orders", "ord_1") == record

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, make_order_record: Any) -> None:
        """Test walking an order through every status one step at a time."""
        store = InMemoryDocumentStore(seed={"orders": [make_order_record("ord_1")]})
        service = OrderStatusService(OrderRepository(store))

        for expected in ("preparing", "ready", "completed"):
            order = await service.advance_to_next("ord_1")
            assert order.status.value == expected

        stored = await store.get("orders", "ord_1")
        assert stored is not None
        assert stored["status"] == "completed"
        assert stored["total_amount"] == Decimal("25.98")


class GatedReadStore(InMemoryDocumentStore):
    """Store whose first read returns its result only once released."""

    def __init__(self, seed: dict[str, list[dict[str, Any]]]) -> None:
        super().__init__(seed=seed)
        self.hold_next_read = True
        self.release = asyncio.Event()

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        record = await super().get(collection, record_id)
        if self.hold_next_read:
            self.hold_next_read = False
            await self.release.wait()
        return record


@pytest.mark.unit
class TestConcurrentStatusChanges:
    """Test suite for staff actions racing on the same order."""

    @pytest.mark.asyncio
    async def test_stale_action_cannot_move_order_backward(self, make_order_record: Any) -> None:
        """Test that an action based on an outdated read is rejected after newer ones commit."""
        store = GatedReadStore(seed={"orders": [make_order_record("ord_1")]})
        service = OrderStatusService(OrderRepository(store))

        slow = asyncio.create_task(service.advance("ord_1", OrderStatusEnum.PREPARING))
        await asyncio.sleep(0)

        await service.advance("ord_1", OrderStatusEnum.PREPARING)
        await service.advance("ord_1", OrderStatusEnum.READY)
        store.release.set()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await slow

        assert exc_info.value.current == "ready"
        assert exc_info.value.requested == "preparing"
        stored = await store.get("orders", "ord_1")
        assert stored is not None
        assert stored["status"] == "ready"

    @pytest.mark.asyncio
    async def test_concurrent_identical_actions_apply_once(self, make_order_record: Any) -> None:
        """Test that two staff pressing the same button leaves exactly one transition applied."""
        store = GatedReadStore(seed={"orders": [make_order_record("ord_1")]})
        store.hold_next_read = False
        service = OrderStatusService(OrderRepository(store))

        results = await asyncio.gather(
            service.advance("ord_1", OrderStatusEnum.PREPARING),
            service.advance("ord_1", OrderStatusEnum.PREPARING),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1
        stored = await store.get("orders", "ord_1")
        assert stored is not None
        assert stored["status"] == "preparing"
