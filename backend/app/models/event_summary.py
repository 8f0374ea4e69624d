"""EventSummary ORM model — immutable snapshot written when an event ends."""
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class EventSummary(Base):
    __tablename__ = "event_summaries"

    summary_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String(36), ForeignKey("djs.dj_id"), nullable=False, index=True)
    event_code = Column(String(6), nullable=False)
    total_requests = Column(Integer, nullable=False, default=0)
    accepted_requests = Column(Integer, nullable=False, default=0)
    rejected_requests = Column(Integer, nullable=False, default=0)
    expired_requests = Column(Integer, nullable=False, default=0)
    closed_requests = Column(Integer, nullable=False, default=0)
    played_songs = Column(Integer, nullable=False, default=0)
    skipped_songs = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Numeric(10, 2), nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
