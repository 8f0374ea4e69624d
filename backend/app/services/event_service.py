"""Event rollup — close out a DJ's event and start a fresh queue.

Responsibilities:
- Release holds that the rollup would otherwise strand (best effort, before the transaction)
- Snapshot request / queue aggregates into an immutable EventSummary
- Delete the DJ's queue, expire still-PENDING requests, close ACCEPTED ones
- Optionally rotate the public event code
All of the above commits as one transaction, so a summary never coexists
with the live queue it summarizes.
"""
import logging
import secrets
import string
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.errors import AlreadyResolved, NotFound, ProviderFailure
from app.models.dj import DJ
from app.models.event_summary import EventSummary
from app.models.queue_item import QueueItem, QueueStatus
from app.models.song_request import SongRequest, RequestStatus
from app.payments import registry
from app.payments.base import PaymentError
from app.services import earnings_service
from app.services.request_service import lock_dj, release_hold_and_resolve
from app.timeutils import utcnow

logger = logging.getLogger(__name__)

EVENT_CODE_ALPHABET = string.ascii_uppercase + string.digits
EVENT_CODE_LENGTH = 6


def generate_event_code(db: Session) -> str:
    """Random 6-char upper-case code not used by any DJ."""
    while True:
        code = "".join(secrets.choice(EVENT_CODE_ALPHABET) for _ in range(EVENT_CODE_LENGTH))
        if not db.query(DJ).filter(DJ.event_code == code).first():
            return code


def _request_counts(db: Session, dj: DJ) -> dict[RequestStatus, int]:
    rows = (
        db.query(SongRequest.status, func.count(SongRequest.request_id))
        .filter(SongRequest.dj_id == dj.dj_id, SongRequest.created_at >= dj.event_started_at)
        .group_by(SongRequest.status)
        .all()
    )
    return {status: count for status, count in rows}


def _snapshot(db: Session, dj: DJ) -> EventSummary:
    counts = _request_counts(db, dj)
    items = db.query(QueueItem).filter(QueueItem.dj_id == dj.dj_id).all()
    queue_stats = earnings_service.summarize_queue(items)
    return EventSummary(
        dj_id=dj.dj_id,
        event_code=dj.event_code,
        total_requests=sum(counts.values()),
        accepted_requests=counts.get(RequestStatus.accepted, 0),
        rejected_requests=counts.get(RequestStatus.rejected, 0),
        expired_requests=counts.get(RequestStatus.expired, 0),
        closed_requests=counts.get(RequestStatus.closed, 0),
        played_songs=queue_stats["played_songs"],
        skipped_songs=queue_stats["skipped_songs"],
        total_earnings=queue_stats["total_earnings"],
        started_at=dj.event_started_at,
        ended_at=utcnow(),
    )


def release_open_holds(db: Session, dj_id: str) -> int:
    """Best-effort release of every hold the event would otherwise strand.

    PENDING requests go through the regular release-then-expire routine;
    accepted songs that never played get their hold voided before the queue is
    dropped. Failures are logged and the rollup proceeds.
    """
    released = 0
    pending = (
        db.query(SongRequest)
        .filter(SongRequest.dj_id == dj_id, SongRequest.status == RequestStatus.pending)
        .all()
    )
    for request in pending:
        try:
            release_hold_and_resolve(db, request, RequestStatus.expired)
            released += 1
        except (AlreadyResolved, ProviderFailure) as exc:
            db.rollback()
            logger.warning("Rollup could not release request %s: %s", request.request_id, exc.detail)

    unplayed = (
        db.query(QueueItem)
        .filter(QueueItem.dj_id == dj_id, QueueItem.status.in_((QueueStatus.waiting, QueueStatus.now_playing)))
        .all()
    )
    for item in unplayed:
        request = item.request
        try:
            registry.get_backend(request.payment_method).void(request.payment_hold_ref)
            released += 1
        except PaymentError as exc:
            logger.warning("Rollup could not void hold %s for queue item %s: %s", request.payment_hold_ref, item.item_id, exc)
    return released


def _roll_up(db: Session, dj_id: str) -> tuple[DJ, EventSummary]:
    """Write the summary and reset the live event. Caller commits."""
    dj = lock_dj(db, dj_id)
    summary = _snapshot(db, dj)
    db.add(summary)

    db.query(QueueItem).filter(QueueItem.dj_id == dj_id).delete(synchronize_session=False)
    db.execute(
        update(SongRequest)
        .where(SongRequest.dj_id == dj_id, SongRequest.status == RequestStatus.pending)
        .values(status=RequestStatus.expired, resolved_at=summary.ended_at)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(SongRequest)
        .where(SongRequest.dj_id == dj_id, SongRequest.status == RequestStatus.accepted)
        .values(status=RequestStatus.closed, resolved_at=summary.ended_at)
        .execution_options(synchronize_session=False)
    )
    dj.event_started_at = summary.ended_at
    return dj, summary


def _get_dj(db: Session, dj_id: str) -> DJ:
    dj = db.query(DJ).filter(DJ.dj_id == dj_id).first()
    if not dj:
        raise NotFound("DJ not found")
    return dj


def end_event(db: Session, dj_id: str) -> EventSummary:
    _get_dj(db, dj_id)
    release_open_holds(db, dj_id)
    _, summary = _roll_up(db, dj_id)
    db.commit()
    db.refresh(summary)
    logger.info(
        "Event %s ended for DJ %s: %d requests, %d played, earnings %s",
        summary.event_code, dj_id, summary.total_requests, summary.played_songs, summary.total_earnings,
    )
    return summary


def rotate_event_code(db: Session, dj_id: str) -> tuple[DJ, EventSummary]:
    """End the current event and hand the DJ a fresh event code."""
    _get_dj(db, dj_id)
    release_open_holds(db, dj_id)
    dj, summary = _roll_up(db, dj_id)
    dj.event_code = generate_event_code(db)
    db.commit()
    db.refresh(dj)
    db.refresh(summary)
    logger.info("DJ %s rotated event code %s -> %s", dj_id, summary.event_code, dj.event_code)
    return dj, summary


def list_event_summaries(db: Session, dj_id: str) -> list[EventSummary]:
    _get_dj(db, dj_id)
    return (
        db.query(EventSummary)
        .filter(EventSummary.dj_id == dj_id)
        .order_by(EventSummary.ended_at.desc())
        .all()
    )


def get_event_stats(db: Session, dj_id: str) -> dict[str, Any]:
    """Live counters for the DJ's current event."""
    dj = _get_dj(db, dj_id)
    counts = _request_counts(db, dj)
    items = db.query(QueueItem).filter(QueueItem.dj_id == dj_id).all()
    return {
        "event_code": dj.event_code,
        "started_at": dj.event_started_at,
        "total_requests": sum(counts.values()),
        "pending_requests": counts.get(RequestStatus.pending, 0),
        "accepted_requests": counts.get(RequestStatus.accepted, 0),
        "rejected_requests": counts.get(RequestStatus.rejected, 0),
        "expired_requests": counts.get(RequestStatus.expired, 0),
        "queue_length": len(items),
        **earnings_service.summarize_queue(items),
    }
