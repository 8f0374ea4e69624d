"""Queue lifecycle — WAITING → NOW_PLAYING → {WAITING, PLAYED, SKIPPED}.

Responsibilities:
- At most one NOW_PLAYING item per DJ (demote + promote in one transaction)
- Money moves only when a song is played (capture) or skipped (void), and
  the queue status is committed only after the provider call succeeded
- Reorder as a single all-or-nothing batch of position writes
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.errors import AlreadyResolved, InvalidStateTransition, NotFound
from app.models.queue_item import QueueItem, QueueStatus
from app.payments import registry
from app.payments.base import PaymentError
from app.services import earnings_service
from app.services.request_service import get_dj_by_event_code, lock_dj, provider_failure
from app.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

OPEN_STATUSES = (QueueStatus.waiting, QueueStatus.now_playing)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def get_item_for_dj(db: Session, dj_id: str, item_id: str) -> QueueItem:
    item = db.query(QueueItem).filter(QueueItem.item_id == item_id, QueueItem.dj_id == dj_id).first()
    if not item:
        raise NotFound("Queue item not found")
    return item


def _require_open(item: QueueItem, action: str) -> None:
    if item.status not in OPEN_STATUSES:
        raise InvalidStateTransition(f"Cannot {action} a song that is already {item.status.value}")


def _close_item(db: Session, item_id: str, target: QueueStatus, **values) -> None:
    """Move an open item to a terminal status, only if it is still open (does not commit)."""
    result = db.execute(
        update(QueueItem)
        .where(QueueItem.item_id == item_id, QueueItem.status.in_(OPEN_STATUSES))
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise AlreadyResolved(f"Queue item {item_id} was already closed")


def set_now_playing(db: Session, dj_id: str, item_id: str) -> QueueItem:
    """Demote the current NOW_PLAYING item (if any) and promote ``item_id``, atomically."""
    lock_dj(db, dj_id)
    item = get_item_for_dj(db, dj_id, item_id)
    _require_open(item, "play")

    db.execute(
        update(QueueItem)
        .where(
            QueueItem.dj_id == dj_id,
            QueueItem.status == QueueStatus.now_playing,
            QueueItem.item_id != item_id,
        )
        .values(status=QueueStatus.waiting)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(QueueItem)
        .where(QueueItem.item_id == item_id, QueueItem.dj_id == dj_id)
        .values(status=QueueStatus.now_playing, promoted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(item)
    logger.info("Queue item %s is now playing for DJ %s", item_id, dj_id)
    return item


def mark_played(db: Session, dj_id: str, item_id: str) -> QueueItem:
    """Capture the held donation, then mark the song PLAYED.

    If the capture fails the item keeps its current status and the error is
    surfaced for a retry; a replayed capture on an already-captured hold is
    treated as success by the adapter.
    """
    item = get_item_for_dj(db, dj_id, item_id)
    _require_open(item, "mark as played")
    request = item.request

    try:
        result = registry.get_backend(request.payment_method).capture(request.payment_hold_ref)
    except PaymentError as exc:
        logger.warning("Capture failed for queue item %s (hold %s): %s", item_id, request.payment_hold_ref, exc)
        raise provider_failure(exc) from exc

    _close_item(db, item_id, QueueStatus.played, played_at=utcnow())
    db.commit()
    db.refresh(item)
    logger.info(
        "Queue item %s played, captured %s %s (hold %s%s)",
        item_id, request.donation_amount, request.currency, request.payment_hold_ref,
        ", replayed" if result.already_captured else "",
    )
    return item


def skip_song(db: Session, dj_id: str, item_id: str) -> QueueItem:
    """Void the held donation, then mark the song SKIPPED."""
    item = get_item_for_dj(db, dj_id, item_id)
    _require_open(item, "skip")
    request = item.request

    try:
        registry.get_backend(request.payment_method).void(request.payment_hold_ref)
    except PaymentError as exc:
        logger.warning("Void failed for queue item %s (hold %s): %s", item_id, request.payment_hold_ref, exc)
        raise provider_failure(exc) from exc

    _close_item(db, item_id, QueueStatus.skipped)
    db.commit()
    db.refresh(item)
    logger.info("Queue item %s skipped, hold %s released", item_id, request.payment_hold_ref)
    return item


def reorder_queue(db: Session, dj_id: str, item_ids: list[str]) -> list[QueueItem]:
    """Assign ``position = index + 1`` following ``item_ids``.

    Ids that do not belong to the DJ are ignored by the ownership filter.
    Items left out of ``item_ids`` keep their relative order after the listed
    ones so positions stay dense. Positions pass through a negative range
    first, which keeps ``(dj_id, position)`` unique in every intermediate state.
    """
    lock_dj(db, dj_id)
    current = db.query(QueueItem).filter(QueueItem.dj_id == dj_id).order_by(QueueItem.position).all()
    owned = {item.item_id for item in current}

    ordered: list[str] = []
    for item_id in item_ids:
        if item_id in owned and item_id not in ordered:
            ordered.append(item_id)
    ordered += [item.item_id for item in current if item.item_id not in ordered]

    for index, item_id in enumerate(ordered):
        db.execute(
            update(QueueItem)
            .where(QueueItem.item_id == item_id, QueueItem.dj_id == dj_id)
            .values(position=-(index + 1))
            .execution_options(synchronize_session=False)
        )
    db.execute(
        update(QueueItem)
        .where(QueueItem.dj_id == dj_id, QueueItem.position < 0)
        .values(position=-QueueItem.position)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("Reordered %d queue items for DJ %s", len(ordered), dj_id)
    return get_queue_items(db, dj_id)


def reconcile_now_playing(db: Session) -> int:
    """Startup recovery: keep only the most recently promoted NOW_PLAYING item per DJ."""
    corrupt = (
        db.query(QueueItem.dj_id)
        .filter(QueueItem.status == QueueStatus.now_playing)
        .group_by(QueueItem.dj_id)
        .having(func.count(QueueItem.item_id) > 1)
        .all()
    )
    demoted = 0
    for (dj_id,) in corrupt:
        playing = (
            db.query(QueueItem)
            .filter(QueueItem.dj_id == dj_id, QueueItem.status == QueueStatus.now_playing)
            .all()
        )
        playing.sort(key=lambda i: as_utc(i.promoted_at) if i.promoted_at else EPOCH, reverse=True)
        for item in playing[1:]:
            item.status = QueueStatus.waiting
            demoted += 1
        logger.warning("DJ %s had %d NOW_PLAYING items; kept %s", dj_id, len(playing), playing[0].item_id)
    db.commit()
    return demoted


def get_queue_items(db: Session, dj_id: str) -> list[QueueItem]:
    return db.query(QueueItem).filter(QueueItem.dj_id == dj_id).order_by(QueueItem.position).all()


def get_dj_queue(db: Session, dj_id: str) -> tuple[list[QueueItem], Decimal]:
    """Queue for the DJ dashboard together with realized earnings."""
    items = get_queue_items(db, dj_id)
    return items, earnings_service.realized_earnings(items)


def get_public_queue(db: Session, event_code: str) -> list[QueueItem]:
    dj = get_dj_by_event_code(db, event_code)
    return get_queue_items(db, dj.dj_id)
