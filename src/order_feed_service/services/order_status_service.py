"""Order status state machine.

Orders move pending -> preparing -> ready -> completed, one step at a time.
Any other request is rejected before the store is touched.
"""

import logging
from datetime import UTC, datetime

from order_feed_service.errors import (
    InvalidTransitionError,
    OrderNotFoundError,
    RecordConflictError,
)
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.observability import traced
from order_feed_service.observability.metrics import record_status_transition
from order_feed_service.repositories.order_repositories import OrderRepository

logger = logging.getLogger(__name__)

_SEQUENCE = (
    OrderStatusEnum.PENDING,
    OrderStatusEnum.PREPARING,
    OrderStatusEnum.READY,
    OrderStatusEnum.COMPLETED,
)


def next_status(status: OrderStatusEnum) -> OrderStatusEnum | None:
    """Return the only status an order may move to next, or None if terminal."""
    index = _SEQUENCE.index(status)
    if index + 1 < len(_SEQUENCE):
        return _SEQUENCE[index + 1]
    return None


def can_transition(current: OrderStatusEnum, requested: OrderStatusEnum) -> bool:
    return next_status(current) == requested


class OrderStatusService:
    """Applies staff status actions to stored orders."""

    def __init__(self, repository: OrderRepository) -> None:
        """Initialize the service.

        Args:
            repository: Order repository to read from and write to
        """
        self.repository = repository

    @traced("order.advance_status")
    async def advance(self, order_id: str, requested: OrderStatusEnum) -> Order:
        """Move an order to the requested status.

        Args:
            order_id: Order to update
            requested: Status staff asked for; must be the immediate successor

        Returns:
            Order: The order as it stands after the transition

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If requested is not the next status, including
                when another action changed the status after it was read
            StoreUnavailableError: If the read or write fails
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if not can_transition(order.status, requested):
            record_status_transition(requested.value, accepted=False)
            logger.warning(
                f"Rejected transition for order {order_id}: "
                f"{order.status.value} -> {requested.value}"
            )
            raise InvalidTransitionError(order_id, order.status.value, requested.value)

        updated_at = datetime.now(UTC)
        try:
            await self.repository.update_status(
                order_id, requested, updated_at, expected=order.status
            )
        except RecordConflictError as e:
            # Another action moved the order after it was read
            latest = await self.repository.get_order(order_id)
            current = latest.status if latest is not None else order.status
            record_status_transition(requested.value, accepted=False)
            logger.warning(
                f"Rejected stale transition for order {order_id}: now {current.value}, "
                f"requested {requested.value}"
            )
            raise InvalidTransitionError(order_id, current.value, requested.value) from e

        record_status_transition(requested.value, accepted=True)
        logger.info(f"Order {order_id} moved {order.status.value} -> {requested.value}")
        return order.model_copy(update={"status": requested, "updated_at": updated_at})

    async def advance_to_next(self, order_id: str) -> Order:
        """Move an order one step forward.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the order is already completed
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        target = next_status(order.status)
        if target is None:
            raise InvalidTransitionError(order_id, order.status.value, order.status.value)

        return await self.advance(order_id, target)
