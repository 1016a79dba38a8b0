"""Main application entry point for the order feed service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
"""

import logging
import os
from datetime import timedelta
from typing import Any

import boto3
from fastapi import FastAPI

from order_feed_service.feed.order_feed import OrderFeed
from order_feed_service.handlers.api_handler import create_app
from order_feed_service.handlers.staff_view import StaffDashboardView
from order_feed_service.models.feed_models import FeedQuery
from order_feed_service.observability import configure_logging, setup_observability
from order_feed_service.repositories.order_repositories import (
    MENU_COLLECTION,
    ORDERS_COLLECTION,
    TABLES_COLLECTION,
    MenuRepository,
    OrderRepository,
    TableRepository,
)
from order_feed_service.services.alert_dispatcher import (
    AlertDispatcher,
    AudioPlayer,
    HttpChimePlayer,
    NullAudioPlayer,
)
from order_feed_service.services.notification_service import NotificationQueue
from order_feed_service.services.order_status_service import OrderStatusService
from order_feed_service.stores.base_store import DocumentStore
from order_feed_service.stores.dynamodb_store import DynamoDBDocumentStore
from order_feed_service.stores.memory_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB - use environment variables or defaults for credentials
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "dummy"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "dummy"),
        )

    logger.info(f"Using AWS DynamoDB in region {region}")
    return boto3.resource("dynamodb", region_name=region)


def create_store() -> DocumentStore:
    """Create the document store selected by STORE_BACKEND.

    Returns:
        DocumentStore: In-memory store for "memory", DynamoDB store for "dynamodb"

    Raises:
        ValueError: If STORE_BACKEND names an unknown backend
    """
    backend = os.getenv("STORE_BACKEND", "dynamodb").lower()

    if backend == "memory":
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()

    if backend == "dynamodb":
        table_names = {
            ORDERS_COLLECTION: os.getenv("DYNAMODB_ORDERS_TABLE", "restaurant-orders"),
            TABLES_COLLECTION: os.getenv("DYNAMODB_TABLES_TABLE", "restaurant-tables"),
            MENU_COLLECTION: os.getenv("DYNAMODB_MENU_TABLE", "restaurant-menu-items"),
        }
        poll_interval = float(os.getenv("FEED_POLL_INTERVAL_SECONDS", "2"))
        logger.info(f"DynamoDB tables: {', '.join(table_names.values())}")
        return DynamoDBDocumentStore(
            dynamodb_resource=get_dynamodb_resource(),
            table_names=table_names,
            poll_interval_seconds=poll_interval,
        )

    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def create_audio_player() -> AudioPlayer:
    """Create the new-order alert player from CHIME_URL.

    Returns:
        AudioPlayer: HTTP chime when CHIME_URL is set, otherwise a logging player
    """
    chime_url = os.getenv("CHIME_URL")
    if chime_url:
        volume = float(os.getenv("CHIME_VOLUME", "0.3"))
        logger.info(f"Alert chime configured at {chime_url}")
        return HttpChimePlayer(url=chime_url, volume=volume)

    logger.warning("CHIME_URL not configured - new order alerts will only be logged")
    return NullAudioPlayer()


def create_staff_view() -> StaffDashboardView:
    """Create a staff view with notification and alert settings from the environment."""
    window_seconds = int(os.getenv("NOTIFICATION_WINDOW_SECONDS", "300"))
    queue_size = int(os.getenv("NOTIFICATION_QUEUE_SIZE", "10"))
    muted = os.getenv("ALERT_MUTED", "false").lower() == "true"

    return StaffDashboardView(
        notifications=NotificationQueue(
            recency_window=timedelta(seconds=window_seconds),
            max_size=queue_size if queue_size > 0 else None,
        ),
        dispatcher=AlertDispatcher(player=create_audio_player(), muted=muted),
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Creates the document store
    3. Initializes repositories and services
    4. Creates the shared order feed and the staff view
    5. Creates FastAPI app with the order endpoints
    6. Sets up observability

    Returns:
        Configured FastAPI application instance
    """
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    logger.info("Initializing order feed service...")

    store = create_store()

    order_repository = OrderRepository(store)
    table_repository = TableRepository(store)
    menu_repository = MenuRepository(store)
    status_service = OrderStatusService(order_repository)

    logger.info("Repositories and services initialized")

    feed = OrderFeed(store, FeedQuery(collection=ORDERS_COLLECTION))
    view = create_staff_view()

    app = create_app(
        view=view,
        order_repository=order_repository,
        table_repository=table_repository,
        menu_repository=menu_repository,
        status_service=status_service,
        feed=feed,
    )

    setup_observability(app)

    logger.info("Order feed service initialized successfully")
    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
