"""FastAPI application for the staff and customer endpoints."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from order_feed_service.errors import (
    EmptyCartError,
    InvalidTransitionError,
    OrderNotFoundError,
    RecordNotFoundError,
    StoreUnavailableError,
    TableNotFoundError,
)
from order_feed_service.feed.order_feed import OrderFeed
from order_feed_service.handlers.staff_view import StaffDashboardView
from order_feed_service.models.feed_models import Notification, OrderStats
from order_feed_service.models.order_models import Order, OrderStatusEnum
from order_feed_service.repositories.order_repositories import (
    MENU_COLLECTION,
    MenuRepository,
    OrderRepository,
    TableRepository,
)
from order_feed_service.services.cart_service import Cart
from order_feed_service.services.order_status_service import OrderStatusService

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    feed_deliveries: int


class NotificationsResponse(BaseModel):
    """Notification queue contents."""

    unread_count: int
    items: list[Notification]


class NotificationActionResponse(BaseModel):
    """Result of a notification queue action."""

    affected: int


class MuteRequest(BaseModel):
    """Request body for toggling the audio alert."""

    muted: bool


class MuteResponse(BaseModel):
    muted: bool


class CartLine(BaseModel):
    """One menu item and quantity in a submitted cart."""

    menu_item_id: str
    quantity: int = Field(default=1, ge=1, le=99)


class PlaceOrderRequest(BaseModel):
    """Cart submitted from a table's menu page."""

    table_id: str
    items: list[CartLine] = Field(default_factory=list)


class StatusChangeRequest(BaseModel):
    """Staff action requesting an order's next status."""

    status: OrderStatusEnum


def create_app(
    view: StaffDashboardView,
    order_repository: OrderRepository,
    table_repository: TableRepository,
    menu_repository: MenuRepository,
    status_service: OrderStatusService,
    feed: OrderFeed | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        view: Staff view fed by the shared order feed
        order_repository: Repository orders are written to
        table_repository: Repository for table lookups
        menu_repository: Repository for menu item lookups
        status_service: Order status state machine
        feed: Shared order feed started and stopped with the application; when
            omitted the view is expected to be attached by the caller

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if feed is not None:
            view.attach(feed)
            feed.start()
        yield
        view.close()
        if feed is not None:
            feed.stop()
            await feed.wait_stopped()

    app = FastAPI(
        title="Order Feed Service API",
        description="Live order board, notifications, and order placement",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.view = view
    app.state.order_repository = order_repository
    app.state.table_repository = table_repository
    app.state.menu_repository = menu_repository
    app.state.status_service = status_service

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", feed_deliveries=app.state.view.deliveries)

    @app.get("/stats", response_model=OrderStats, tags=["Dashboard"])
    async def get_stats() -> OrderStats:
        """Aggregate statistics from the latest feed delivery."""
        stats: OrderStats = app.state.view.stats
        return stats

    @app.get("/orders", response_model=list[Order], tags=["Orders"])
    async def list_orders(status: OrderStatusEnum | None = None) -> list[Order]:
        """Order board, newest first, optionally filtered by status."""
        orders: list[Order] = app.state.view.orders(status)
        return orders

    @app.get("/orders/recent", response_model=list[Order], tags=["Dashboard"])
    async def recent_orders(limit: int = 5) -> list[Order]:
        """The newest orders for the dashboard."""
        orders: list[Order] = app.state.view.recent_orders(limit)
        return orders

    @app.post("/orders", response_model=Order, status_code=201, tags=["Orders"])
    async def place_order(request: PlaceOrderRequest) -> Order:
        """Build a cart from the request and submit it as a new order.

        Raises:
            HTTPException: 404 for unknown tables or items, 409 for inactive
                tables or unavailable items, 400 for an empty cart, 503 if the
                store is unavailable
        """
        try:
            table = await app.state.table_repository.get_table(request.table_id)
            if table is None:
                raise TableNotFoundError(request.table_id)
            if not table.is_active:
                raise HTTPException(
                    status_code=409, detail=f"Table {request.table_id} is not accepting orders"
                )

            cart = Cart()
            for line in request.items:
                item = await app.state.menu_repository.get_item(line.menu_item_id)
                if item is None:
                    raise RecordNotFoundError(MENU_COLLECTION, line.menu_item_id)
                for _ in range(line.quantity):
                    cart.add(item)

            order: Order = await cart.submit(table, app.state.order_repository)
            return order

        except RecordNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except EmptyCartError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except StoreUnavailableError as e:
            logger.error(f"Order placement failed: {e}")
            raise HTTPException(
                status_code=503, detail="Order could not be saved, please try again"
            ) from e

    @app.post("/orders/{order_id}/status", response_model=Order, tags=["Orders"])
    async def change_status(order_id: str, request: StatusChangeRequest) -> Order:
        """Advance an order to its next status.

        Raises:
            HTTPException: 404 if the order does not exist, 409 if the status
                is not the next in sequence, 503 if the store is unavailable
        """
        try:
            order: Order = await app.state.status_service.advance(order_id, request.status)
            return order
        except OrderNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except StoreUnavailableError as e:
            logger.error(f"Status change for order {order_id} failed: {e}")
            raise HTTPException(
                status_code=503, detail="Status could not be saved, please try again"
            ) from e

    @app.get("/notifications", response_model=NotificationsResponse, tags=["Notifications"])
    async def list_notifications() -> NotificationsResponse:
        """Notification queue, newest first."""
        queue = app.state.view.notifications
        return NotificationsResponse(unread_count=queue.unread_count, items=queue.items)

    @app.post(
        "/notifications/read-all",
        response_model=NotificationActionResponse,
        tags=["Notifications"],
    )
    async def mark_all_read() -> NotificationActionResponse:
        """Mark every notification read."""
        return NotificationActionResponse(affected=app.state.view.notifications.mark_all_read())

    @app.post(
        "/notifications/{notification_id}/read",
        response_model=NotificationActionResponse,
        tags=["Notifications"],
    )
    async def mark_read(notification_id: str) -> NotificationActionResponse:
        """Mark one notification read."""
        if not app.state.view.notifications.mark_read(notification_id):
            raise HTTPException(status_code=404, detail="Notification not found")
        return NotificationActionResponse(affected=1)

    @app.delete(
        "/notifications/{notification_id}",
        response_model=NotificationActionResponse,
        tags=["Notifications"],
    )
    async def dismiss(notification_id: str) -> NotificationActionResponse:
        """Dismiss one notification."""
        if not app.state.view.notifications.dismiss(notification_id):
            raise HTTPException(status_code=404, detail="Notification not found")
        return NotificationActionResponse(affected=1)

    @app.delete(
        "/notifications", response_model=NotificationActionResponse, tags=["Notifications"]
    )
    async def dismiss_all() -> NotificationActionResponse:
        """Dismiss every notification."""
        return NotificationActionResponse(affected=app.state.view.notifications.dismiss_all())

    @app.put("/alerts/mute", response_model=MuteResponse, tags=["Notifications"])
    async def set_mute(request: MuteRequest) -> MuteResponse:
        """Mute or unmute the new-order sound."""
        app.state.view.dispatcher.set_muted(request.muted)
        return MuteResponse(muted=request.muted)

    return app
