"""Song request API routes — delegates to request_service for lifecycle rules."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.song_request import RequestStatus
from app.schemas.queue import QueueItemOut
from app.schemas.song_request import (
    SongRequestCreate,
    SongRequestCreated,
    SongRequestOut,
    PublicSongRequestOut,
)
from app.routers.queue import queue_item_out
from app.services import request_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=SongRequestCreated, status_code=status.HTTP_201_CREATED)
def submit_request(payload: SongRequestCreate, db: Session = Depends(get_db)):
    """Submit a paid song request; a payment hold is placed unless one was supplied."""
    request, authorization = request_service.submit_request(
        db=db,
        event_code=payload.event_code,
        song_title=payload.song_title,
        artist_name=payload.artist_name,
        requester_name=payload.requester_name,
        requester_email=payload.requester_email,
        donation_amount=payload.donation_amount,
        payment_method=payload.payment_method,
        payment_hold_ref=payload.payment_hold_ref,
        currency=payload.currency,
    )
    handles = authorization.model_dump(exclude={"hold_ref"}) if authorization else {}
    return request_service.with_expiry(request, **handles)


@router.get("/event/{event_code}", response_model=list[PublicSongRequestOut])
def list_public_requests(event_code: str, db: Session = Depends(get_db)):
    """Latest requests for an event, as shown to attendees."""
    return [request_service.with_expiry(r) for r in request_service.list_public_requests(db, event_code)]


@router.get("/", response_model=list[SongRequestOut])
def list_dj_requests(
    dj_id: str = Query(..., description="ID of the DJ owning the requests"),
    status_filter: Optional[RequestStatus] = Query(None),
    db: Session = Depends(get_db),
):
    return [request_service.with_expiry(r) for r in request_service.list_requests_for_dj(db, dj_id, status_filter)]


@router.post("/{request_id}/accept", response_model=QueueItemOut)
def accept_request(
    request_id: str,
    dj_id: str = Query(..., description="ID of the DJ accepting the request"),
    db: Session = Depends(get_db),
):
    """Accept a pending request into the queue. Payment is captured only when the song plays."""
    item = request_service.accept_request(db, dj_id, request_id)
    return queue_item_out(item)


@router.post("/{request_id}/reject", response_model=SongRequestOut)
def reject_request(
    request_id: str,
    dj_id: str = Query(..., description="ID of the DJ rejecting the request"),
    db: Session = Depends(get_db),
):
    """Reject a pending request and release its payment hold."""
    request = request_service.reject_request(db, dj_id, request_id)
    return request_service.with_expiry(request)
