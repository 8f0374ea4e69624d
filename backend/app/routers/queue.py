"""Queue API routes — delegates to queue_service for playback and payment rules."""
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.queue_item import QueueItem, QueueStatus
from app.schemas.queue import DJQueueOut, PublicQueueItemOut, QueueItemOut, QueueReorder
from app.services import queue_service

logger = logging.getLogger(__name__)
router = APIRouter()


def queue_item_out(item: QueueItem) -> dict:
    request = item.request
    return {
        "item_id": item.item_id,
        "request_id": item.request_id,
        "position": item.position,
        "song_title": request.song_title,
        "artist_name": request.artist_name,
        "requester_name": request.requester_name,
        "requester_email": request.requester_email,
        "donation_amount": request.donation_amount,
        "payment_method": request.payment_method,
        "status": item.status,
        "added_at": item.added_at,
        "played_at": item.played_at,
        "is_now_playing": item.status == QueueStatus.now_playing,
    }


@router.get("/event/{event_code}", response_model=list[PublicQueueItemOut])
def get_public_queue(event_code: str, db: Session = Depends(get_db)):
    """Queue as shown to attendees (no payment details)."""
    return [queue_item_out(i) for i in queue_service.get_public_queue(db, event_code)]


@router.get("/", response_model=DJQueueOut)
def get_dj_queue(dj_id: str = Query(...), db: Session = Depends(get_db)):
    """Queue for the DJ dashboard with realized earnings (PLAYED songs only)."""
    items, total_earnings = queue_service.get_dj_queue(db, dj_id)
    return {"queue": [queue_item_out(i) for i in items], "total_earnings": total_earnings}


@router.put("/reorder", response_model=list[QueueItemOut])
def reorder_queue(payload: QueueReorder, dj_id: str = Query(...), db: Session = Depends(get_db)):
    items = queue_service.reorder_queue(db, dj_id, payload.queue_item_ids)
    return [queue_item_out(i) for i in items]


@router.post("/{item_id}/now-playing", response_model=QueueItemOut)
def set_now_playing(item_id: str, dj_id: str = Query(...), db: Session = Depends(get_db)):
    return queue_item_out(queue_service.set_now_playing(db, dj_id, item_id))


@router.post("/{item_id}/played", response_model=QueueItemOut)
def mark_played(item_id: str, dj_id: str = Query(...), db: Session = Depends(get_db)):
    """Capture the donation and mark the song played."""
    return queue_item_out(queue_service.mark_played(db, dj_id, item_id))


@router.post("/{item_id}/skip", response_model=QueueItemOut)
def skip_song(item_id: str, dj_id: str = Query(...), db: Session = Depends(get_db)):
    """Release the donation hold and mark the song skipped."""
    return queue_item_out(queue_service.skip_song(db, dj_id, item_id))
