"""Change feed subscriptions.

A Subscription is a per-subscriber FIFO of snapshot deliveries. Stores publish
into it in commit order; the subscriber consumes it as an async iterator.
Closing is synchronous and drops anything still queued, so a delivery that was
in flight when the owner went away is never applied.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from order_feed_service.models.feed_models import (
    ChangeType,
    DocumentChange,
    DocumentSnapshot,
    FeedQuery,
)

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Live subscription to a filtered store collection."""

    def __init__(
        self,
        query: FeedQuery,
        on_close: Callable[["Subscription"], None] | None = None,
    ) -> None:
        """Initialize the subscription.

        Args:
            query: Collection and filter this subscription watches
            on_close: Called once when the subscription is closed, used by the
                store to release whatever feeds it
        """
        self.query = query
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._active = True
        self._on_close = on_close

    @property
    def active(self) -> bool:
        """Whether deliveries are still accepted and handed out."""
        return self._active

    def publish(self, snapshot: DocumentSnapshot) -> bool:
        """Queue a delivery.

        Args:
            snapshot: Snapshot to deliver

        Returns:
            bool: True if queued, False if the subscription is closed
        """
        if not self._active:
            return False
        self._queue.put_nowait(snapshot)
        return True

    def close(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"Subscription to {self.query.collection} closed")
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> DocumentSnapshot:
        if not self._active:
            raise StopAsyncIteration
        item = await self._queue.get()
        # Re-check after the await: close() may have run while we were suspended
        if item is _CLOSED or not self._active:
            raise StopAsyncIteration
        snapshot: DocumentSnapshot = item
        return snapshot


def diff_snapshots(
    previous: dict[str, dict[str, Any]],
    current: dict[str, dict[str, Any]],
) -> list[DocumentChange]:
    """Compute the incremental changes between two keyed views of a collection.

    Added and modified records are listed in the current view's order, followed
    by removed records in the previous view's order. Diffing against an empty
    previous view tags every record as added, which is what a first delivery
    looks like.

    Args:
        previous: Records from the last delivery, keyed by id
        current: Records now matching the query, keyed by id

    Returns:
        list: Changes needed to turn previous into current
    """
    changes: list[DocumentChange] = []

    for doc_id, record in current.items():
        if doc_id not in previous:
            changes.append(DocumentChange(type=ChangeType.ADDED, doc_id=doc_id, data=record))
        elif previous[doc_id] != record:
            changes.append(DocumentChange(type=ChangeType.MODIFIED, doc_id=doc_id, data=record))

    for doc_id, record in previous.items():
        if doc_id not in current:
            changes.append(DocumentChange(type=ChangeType.REMOVED, doc_id=doc_id, data=record))

    return changes
