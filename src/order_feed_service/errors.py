"""Exception taxonomy for the order feed service.

None of these are fatal to the process. Validation errors (empty cart, invalid
status transition) are raised before any store call is made; store errors are
surfaced to the caller for a manual retry.
"""


class OrderFeedError(Exception):
    """Base class for all order feed service errors."""


class StoreUnavailableError(OrderFeedError):
    """Raised when a read or write against the backing store fails."""


class RecordNotFoundError(OrderFeedError):
    """Raised when a record required by an operation does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection} record {record_id} not found")
        self.collection = collection
        self.record_id = record_id


class RecordConflictError(OrderFeedError):
    """Raised when a conditional write finds the record no longer matches what was read."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection} record {record_id} changed before the write")
        self.collection = collection
        self.record_id = record_id


class OrderNotFoundError(RecordNotFoundError):
    """Raised when an order id does not resolve to a stored order."""

    def __init__(self, order_id: str) -> None:
        super().__init__("orders", order_id)


class TableNotFoundError(RecordNotFoundError):
    """Raised when a table id does not resolve to a stored table."""

    def __init__(self, table_id: str) -> None:
        super().__init__("tables", table_id)


class EmptyCartError(OrderFeedError):
    """Raised when an order is submitted from a cart with no entries."""

    def __init__(self) -> None:
        super().__init__("Cannot submit an order from an empty cart")


class InvalidTransitionError(OrderFeedError):
    """Raised when a status change skips a step, goes backward, or leaves a terminal state."""

    def __init__(self, order_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Order {order_id} cannot move from '{current}' to '{requested}'"
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class PlaybackError(OrderFeedError):
    """Raised by audio players when the alert cue cannot be played."""
