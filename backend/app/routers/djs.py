"""DJ API routes — registration, settings and event rollup."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.dj import DJ
from app.schemas.dj import (
    DJCreate,
    DJUpdate,
    DJOut,
    EventStatsOut,
    EventSummaryOut,
    RotateEventCodeOut,
)
from app.services import event_service

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_dj_or_404(db: Session, dj_id: str) -> DJ:
    dj = db.query(DJ).filter(DJ.dj_id == dj_id).first()
    if not dj:
        raise HTTPException(status_code=404, detail="DJ not found")
    return dj


@router.post("/", response_model=DJOut, status_code=status.HTTP_201_CREATED)
def create_dj(payload: DJCreate, db: Session = Depends(get_db)):
    """Register a DJ and assign a fresh event code."""
    if db.query(DJ).filter(DJ.email == payload.email).first():
        raise HTTPException(status_code=400, detail="Email already exists")
    dj = DJ(**payload.model_dump(), event_code=event_service.generate_event_code(db))
    db.add(dj)
    db.commit()
    db.refresh(dj)
    logger.info("Registered DJ %s (%s) with event code %s", dj.dj_id, dj.name, dj.event_code)
    return dj


@router.get("/{dj_id}", response_model=DJOut)
def get_dj(dj_id: str, db: Session = Depends(get_db)):
    return _get_dj_or_404(db, dj_id)


@router.patch("/{dj_id}", response_model=DJOut)
def update_dj(dj_id: str, payload: DJUpdate, db: Session = Depends(get_db)):
    """Update DJ settings (partial update)."""
    dj = _get_dj_or_404(db, dj_id)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(dj, field, value)
    db.commit()
    db.refresh(dj)
    logger.info("Updated settings for DJ %s", dj_id)
    return dj


@router.post("/{dj_id}/end-event", response_model=EventSummaryOut)
def end_event(dj_id: str, db: Session = Depends(get_db)):
    """Close the current event: snapshot a summary and reset the queue."""
    return event_service.end_event(db, dj_id)


@router.post("/{dj_id}/rotate-event-code", response_model=RotateEventCodeOut)
def rotate_event_code(dj_id: str, db: Session = Depends(get_db)):
    """Close the current event and start a new one under a fresh event code."""
    dj, summary = event_service.rotate_event_code(db, dj_id)
    return RotateEventCodeOut(
        event_code=dj.event_code,
        event_url=f"{settings.FRONTEND_URL}/event/{dj.event_code}",
        previous_event_summary=EventSummaryOut.model_validate(summary),
    )


@router.get("/{dj_id}/summaries", response_model=list[EventSummaryOut])
def list_event_summaries(dj_id: str, db: Session = Depends(get_db)):
    return event_service.list_event_summaries(db, dj_id)


@router.get("/{dj_id}/stats", response_model=EventStatsOut)
def get_event_stats(dj_id: str, db: Session = Depends(get_db)):
    return event_service.get_event_stats(db, dj_id)
