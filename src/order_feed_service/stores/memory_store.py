"""In-process document store.

Commits apply synchronously and are pushed to every live subscription on the
affected collection before the write call returns, so deliveries always follow
commit order. Used for local development and tests.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from order_feed_service.errors import RecordConflictError, RecordNotFoundError
from order_feed_service.feed.subscription import Subscription, diff_snapshots
from order_feed_service.models.feed_models import DocumentSnapshot, FeedQuery
from order_feed_service.stores.base_store import DocumentStore, new_record_id

logger = logging.getLogger(__name__)


@dataclass
class _Watch:
    subscription: Subscription
    last_view: dict[str, dict[str, Any]] = field(default_factory=dict)


class InMemoryDocumentStore(DocumentStore):
    """Document store holding collections in memory."""

    def __init__(self, seed: dict[str, list[dict[str, Any]]] | None = None) -> None:
        """Initialize the store.

        Args:
            seed: Optional initial records per collection; each needs an "id"
        """
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: list[_Watch] = []

        for collection, records in (seed or {}).items():
            documents = self._collections.setdefault(collection, {})
            for record in records:
                documents[record["id"]] = copy.deepcopy(record)

    @property
    def subscription_count(self) -> int:
        """Number of live subscriptions."""
        return len(self._watches)

    def subscribe(self, query: FeedQuery) -> Subscription:
        subscription = Subscription(query, on_close=self._release)
        watch = _Watch(subscription=subscription)
        self._watches.append(watch)

        view = self._view(query)
        subscription.publish(
            DocumentSnapshot(documents=list(view.values()), changes=diff_snapshots({}, view))
        )
        watch.last_view = view

        logger.info(f"Subscribed to {query.collection} ({self.subscription_count} live)")
        return subscription

    async def create(self, collection: str, record: dict[str, Any]) -> str:
        record_id = record.get("id") or new_record_id()
        documents = self._collections.setdefault(collection, {})
        documents[record_id] = {**copy.deepcopy(record), "id": record_id}

        self._notify(collection)
        return record_id

    async def update(
        self,
        collection: str,
        record_id: str,
        partial: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        documents = self._collections.get(collection, {})
        if record_id not in documents:
            raise RecordNotFoundError(collection, record_id)

        current = documents[record_id]
        for name, value in (expected or {}).items():
            if current.get(name) != value:
                raise RecordConflictError(collection, record_id)

        merged = {**documents[record_id], **copy.deepcopy(partial), "id": record_id}
        documents[record_id] = merged

        self._notify(collection)

    async def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def _view(self, query: FeedQuery) -> dict[str, dict[str, Any]]:
        documents = self._collections.get(query.collection, {})
        return {
            doc_id: copy.deepcopy(record)
            for doc_id, record in documents.items()
            if query.matches(record)
        }

    def _notify(self, collection: str) -> None:
        for watch in list(self._watches):
            query = watch.subscription.query
            if query.collection != collection:
                continue

            view = self._view(query)
            changes = diff_snapshots(watch.last_view, view)
            if not changes:
                continue

            watch.subscription.publish(
                DocumentSnapshot(documents=list(view.values()), changes=changes)
            )
            watch.last_view = view

    def _release(self, subscription: Subscription) -> None:
        self._watches = [w for w in self._watches if w.subscription is not subscription]
