"""Custom metrics for the order feed service."""

from opentelemetry import metrics

meter = metrics.get_meter("order-feed-svc")

orders_submitted_counter = meter.create_counter(
    name="orders_submitted_total",
    description="Total number of orders written from carts",
    unit="1",
)

order_submit_failure_counter = meter.create_counter(
    name="order_submit_failure_total",
    description="Total number of order submissions that failed by reason",
    unit="1",
)

status_transition_counter = meter.create_counter(
    name="order_status_transition_total",
    description="Total number of accepted or rejected status transitions",
    unit="1",
)

notifications_counter = meter.create_counter(
    name="order_notifications_emitted_total",
    description="Total number of new-order notifications added to staff queues",
    unit="1",
)

alerts_counter = meter.create_counter(
    name="order_alerts_fired_total",
    description="Total number of audio alerts triggered",
    unit="1",
)

playback_failure_counter = meter.create_counter(
    name="order_alert_playback_failure_total",
    description="Total number of audio alerts that failed to play",
    unit="1",
)

invalid_record_counter = meter.create_counter(
    name="feed_invalid_record_total",
    description="Records rejected at the store boundary by collection",
    unit="1",
)

order_value_histogram = meter.create_histogram(
    name="order_total_amount",
    description="Total amount of submitted orders",
    unit="1",
)


def record_order_submitted(total_amount: float) -> None:
    """Record a successfully written order.

    Args:
        total_amount: The order's total
    """
    orders_submitted_counter.add(1)
    order_value_histogram.record(total_amount)


def record_order_submit_failure(reason: str) -> None:
    """Record a failed order submission.

    Args:
        reason: Error type that stopped the submission
    """
    order_submit_failure_counter.add(1, {"reason": reason})


def record_status_transition(to_status: str, accepted: bool) -> None:
    """Record a status transition attempt.

    Args:
        to_status: The requested status
        accepted: Whether the transition was written
    """
    status_transition_counter.add(1, {"to_status": to_status, "accepted": str(accepted).lower()})


def record_notifications(count: int) -> None:
    """Record notifications added to a queue.

    Args:
        count: Number of new notifications
    """
    if count:
        notifications_counter.add(count)


def record_alert_fired() -> None:
    """Record an audio alert being triggered."""
    alerts_counter.add(1)


def record_playback_failure(error_type: str) -> None:
    """Record an audio alert that failed to play.

    Args:
        error_type: Type of error raised by the player
    """
    playback_failure_counter.add(1, {"error_type": error_type})


def record_invalid_record(collection: str) -> None:
    """Record a malformed record dropped at the store boundary.

    Args:
        collection: Collection the record came from
    """
    invalid_record_counter.add(1, {"collection": collection})
