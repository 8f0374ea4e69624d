"""QueueItem ORM model — created 1:1 with a SongRequest when it is accepted."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class QueueStatus(str, enum.Enum):
    waiting = "WAITING"
    now_playing = "NOW_PLAYING"
    played = "PLAYED"
    skipped = "SKIPPED"


class QueueItem(Base):
    __tablename__ = "queue_items"
    __table_args__ = (UniqueConstraint("dj_id", "position", name="uq_queue_items_dj_position"),)

    item_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String(36), ForeignKey("djs.dj_id"), nullable=False, index=True)
    request_id = Column(String(36), ForeignKey("song_requests.request_id"), nullable=False, unique=True)
    position = Column(Integer, nullable=False)
    status = Column(SAEnum(QueueStatus, native_enum=False), nullable=False, default=QueueStatus.waiting)
    added_at = Column(DateTime(timezone=True), server_default=func.now())
    promoted_at = Column(DateTime(timezone=True), nullable=True)
    played_at = Column(DateTime(timezone=True), nullable=True)

    request = relationship("SongRequest", lazy="joined")
