"""Earnings aggregation — realized revenue is what was actually played."""
from decimal import Decimal
from typing import Iterable

from app.models.queue_item import QueueItem, QueueStatus


def realized_earnings(items: Iterable[QueueItem]) -> Decimal:
    """Sum of donations for PLAYED items. SKIPPED and still-queued songs earn nothing."""
    return sum(
        (Decimal(item.request.donation_amount) for item in items if item.status == QueueStatus.played),
        Decimal("0.00"),
    )


def summarize_queue(items: Iterable[QueueItem]) -> dict:
    items = list(items)
    return {
        "played_songs": sum(1 for i in items if i.status == QueueStatus.played),
        "skipped_songs": sum(1 for i in items if i.status == QueueStatus.skipped),
        "total_earnings": realized_earnings(items),
    }
