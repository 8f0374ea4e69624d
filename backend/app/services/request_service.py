"""Request lifecycle — PENDING → {ACCEPTED, REJECTED, EXPIRED}.

Responsibilities:
- Minimum-donation check and hold placement on submission
- Acceptance: conditional status flip + queue item creation in one transaction
- Rejection / expiration: release the hold first, commit the status second
- Conditional updates keyed on ``status = PENDING`` so that exactly one of a
  concurrent accept / reject / expire wins
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    AlreadyResolved,
    BelowMinimum,
    Expired,
    InvalidStateTransition,
    NotFound,
    ProviderFailure,
    ValidationError,
)
from app.models.dj import DJ
from app.models.queue_item import QueueItem, QueueStatus
from app.models.song_request import SongRequest, RequestStatus, PaymentMethod
from app.payments import registry
from app.payments.base import (
    Authorization,
    HoldAlreadyCaptured,
    HoldAlreadyVoided,
    InvalidAmount,
    PaymentError,
)
from app.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


def expiration_delta() -> timedelta:
    return timedelta(minutes=settings.REQUEST_EXPIRATION_MINUTES)


def expires_at(created_at: datetime) -> datetime:
    return as_utc(created_at) + expiration_delta()


def time_remaining(created_at: datetime, now: Optional[datetime] = None) -> timedelta:
    """Time left before a PENDING request expires (never negative)."""
    remaining = expires_at(created_at) - (now or utcnow())
    return max(remaining, timedelta(0))


def is_expired(created_at: datetime, now: Optional[datetime] = None) -> bool:
    return time_remaining(created_at, now) <= timedelta(0)


def provider_failure(exc: PaymentError) -> ProviderFailure:
    """Translate an adapter error into the caller-facing error kind."""
    if isinstance(exc, (HoldAlreadyCaptured, HoldAlreadyVoided)):
        return ProviderFailure(detail=str(exc), status_code=409)
    return ProviderFailure(detail=str(exc))


def get_dj_by_event_code(db: Session, event_code: str) -> DJ:
    dj = db.query(DJ).filter(DJ.event_code == event_code.strip().upper()).first()
    if not dj:
        raise NotFound("Event not found")
    return dj


def get_request_for_dj(db: Session, dj_id: str, request_id: str) -> SongRequest:
    request = db.query(SongRequest).filter(SongRequest.request_id == request_id).first()
    if not request or request.dj_id != dj_id:
        raise NotFound("Request not found")
    return request


def submit_request(
    db: Session,
    event_code: str,
    song_title: str,
    artist_name: str,
    requester_name: str,
    donation_amount: Decimal,
    payment_method: str,
    requester_email: Optional[str] = None,
    payment_hold_ref: Optional[str] = None,
    currency: Optional[str] = None,
) -> tuple[SongRequest, Optional[Authorization]]:
    """Place a hold (unless the client already did) and persist a PENDING request.

    The hold exists on the provider before the request becomes visible to the DJ.
    """
    dj = get_dj_by_event_code(db, event_code)
    donation_amount = Decimal(donation_amount)
    if donation_amount <= 0:
        raise ValidationError("Donation amount must be positive")
    if donation_amount < dj.min_donation:
        raise BelowMinimum(dj.min_donation)

    method = PaymentMethod(payment_method)
    currency = (currency or settings.DEFAULT_CURRENCY).upper()
    authorization = None
    if payment_hold_ref:
        if db.query(SongRequest).filter(SongRequest.payment_hold_ref == payment_hold_ref).first():
            raise ValidationError("Payment hold is already attached to another request")
    else:
        try:
            authorization = registry.get_backend(method).authorize(donation_amount, currency)
        except InvalidAmount as exc:
            raise ValidationError(str(exc)) from exc
        except PaymentError as exc:
            logger.warning("Authorization failed for %s %s via %s: %s", donation_amount, currency, method.value, exc)
            raise provider_failure(exc) from exc
        payment_hold_ref = authorization.hold_ref

    request = SongRequest(
        dj_id=dj.dj_id,
        song_title=song_title,
        artist_name=artist_name,
        requester_name=requester_name,
        requester_email=requester_email,
        donation_amount=donation_amount,
        currency=currency,
        payment_method=method,
        payment_hold_ref=payment_hold_ref,
        status=RequestStatus.pending,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "Request %s submitted for '%s' by %s (%s %s, hold %s)",
        request.request_id, song_title, requester_name, donation_amount, currency, payment_hold_ref,
    )
    return request, authorization


def _transition_pending(db: Session, request_id: str, target: RequestStatus, *conditions) -> None:
    """Flip PENDING → ``target`` only if the row is still PENDING (does not commit)."""
    result = db.execute(
        update(SongRequest)
        .where(SongRequest.request_id == request_id, SongRequest.status == RequestStatus.pending, *conditions)
        .values(status=target, resolved_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise AlreadyResolved(f"Request {request_id} is no longer pending")


def lock_dj(db: Session, dj_id: str) -> DJ:
    """Row-lock the DJ to serialize queue writes (no-op on SQLite)."""
    return db.query(DJ).filter(DJ.dj_id == dj_id).with_for_update().one()


def next_queue_position(db: Session, dj_id: str) -> int:
    current = db.query(func.max(QueueItem.position)).filter(QueueItem.dj_id == dj_id).scalar()
    return (current or 0) + 1


def accept_request(db: Session, dj_id: str, request_id: str) -> QueueItem:
    """Accept a PENDING request into the DJ's queue. Funds are not captured here."""
    request = get_request_for_dj(db, dj_id, request_id)
    if request.status != RequestStatus.pending:
        raise InvalidStateTransition(f"Request cannot be accepted (status {request.status.value})")
    if is_expired(request.created_at):
        raise Expired()
    if not request.payment_hold_ref:
        raise InvalidStateTransition("Request has no payment hold")

    # Once a request is old enough for the sweeper to select it, accept must lose.
    _transition_pending(
        db, request_id, RequestStatus.accepted,
        SongRequest.created_at > utcnow() - expiration_delta(),
    )
    lock_dj(db, dj_id)
    item = QueueItem(
        dj_id=dj_id,
        request_id=request_id,
        position=next_queue_position(db, dj_id),
        status=QueueStatus.waiting,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("Request %s accepted into queue at position %d", request_id, item.position)
    return item


def release_hold_and_resolve(db: Session, request: SongRequest, target: RequestStatus) -> SongRequest:
    """Void the request's hold, then move it PENDING → ``target``.

    Shared by manual rejection and the expiration sweeper. If the void fails
    nothing is committed and the request stays PENDING for a retry.
    """
    request_id = request.request_id
    # Fresh, row-locked read: a concurrent accept either committed already
    # (seen here) or blocks until this release commits (and then loses).
    request = (
        db.query(SongRequest)
        .filter(SongRequest.request_id == request_id)
        .populate_existing()
        .with_for_update()
        .one()
    )
    if request.status != RequestStatus.pending:
        db.rollback()
        raise AlreadyResolved(f"Request {request_id} is already {request.status.value}")

    if request.payment_hold_ref:
        try:
            registry.get_backend(request.payment_method).void(request.payment_hold_ref)
        except PaymentError as exc:
            logger.warning("Void failed for request %s (hold %s): %s", request_id, request.payment_hold_ref, exc)
            raise provider_failure(exc) from exc

    _transition_pending(db, request_id, target)
    db.commit()
    db.refresh(request)
    logger.info("Request %s released and marked %s", request_id, target.value)
    return request


def reject_request(db: Session, dj_id: str, request_id: str) -> SongRequest:
    request = get_request_for_dj(db, dj_id, request_id)
    if request.status != RequestStatus.pending:
        raise InvalidStateTransition(f"Request cannot be rejected (status {request.status.value})")
    return release_hold_and_resolve(db, request, RequestStatus.rejected)


def list_requests_for_dj(db: Session, dj_id: str, status: Optional[RequestStatus] = None) -> list[SongRequest]:
    query = db.query(SongRequest).filter(SongRequest.dj_id == dj_id)
    if status:
        query = query.filter(SongRequest.status == RequestStatus(status))
    return query.order_by(SongRequest.created_at.desc()).all()


def list_public_requests(db: Session, event_code: str, limit: int = 20) -> list[SongRequest]:
    dj = get_dj_by_event_code(db, event_code)
    return (
        db.query(SongRequest)
        .filter(SongRequest.dj_id == dj.dj_id)
        .order_by(SongRequest.created_at.desc())
        .limit(limit)
        .all()
    )


def with_expiry(request: SongRequest, **extra: Any) -> dict[str, Any]:
    """Attach ``expires_at`` / ``time_remaining_seconds`` for response models."""
    remaining = time_remaining(request.created_at) if request.status == RequestStatus.pending else timedelta(0)
    return {
        **{c.name: getattr(request, c.name) for c in SongRequest.__table__.columns},
        "expires_at": expires_at(request.created_at),
        "time_remaining_seconds": int(remaining.total_seconds()),
        **extra,
    }
