"""Base class for document stores backing the order feed.

The core never talks to a database directly. It consumes this interface, which
a persistence collaborator implements. Implementations raise
StoreUnavailableError on transport or permission failures and never retry
writes on their own, since a retried create could duplicate an order.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any

from order_feed_service.feed.subscription import Subscription
from order_feed_service.models.feed_models import FeedQuery


def new_record_id() -> str:
    """Generate an identifier for a new record."""
    return uuid.uuid4().hex[:20]


class DocumentStore(ABC):
    """Abstract document store with a live change feed."""

    @abstractmethod
    def subscribe(self, query: FeedQuery) -> Subscription:
        """Open a live subscription.

        The first delivery holds every matching record tagged as added. Each
        later delivery holds the full matching set plus the changes since the
        previous delivery, in commit order.

        Args:
            query: Collection and filter to watch

        Returns:
            Subscription: Async iterator of DocumentSnapshot deliveries
        """

    @abstractmethod
    async def create(self, collection: str, record: dict[str, Any]) -> str:
        """Insert a new record.

        Args:
            collection: Target collection
            record: Record fields; an id is generated when absent

        Returns:
            str: The new record's id

        Raises:
            StoreUnavailableError: If the write fails
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        record_id: str,
        partial: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        """Merge fields into an existing record.

        The check against expected and the write happen as one atomic step.

        Args:
            collection: Target collection
            record_id: Record to update
            partial: Fields to set; other fields are left untouched
            expected: Fields that must still hold these values for the write
                to apply

        Raises:
            RecordNotFoundError: If the record does not exist
            RecordConflictError: If a field in expected has a different value
            StoreUnavailableError: If the write fails
        """

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Fetch a single record.

        Args:
            collection: Source collection
            record_id: Record to fetch

        Returns:
            dict: The record including its id, or None if not found

        Raises:
            StoreUnavailableError: If the read fails
        """
