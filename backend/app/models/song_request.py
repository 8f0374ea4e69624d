"""SongRequest ORM model — one per paid song submission."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Enum as SAEnum
from app.timeutils import utcnow
from app.database import Base


class RequestStatus(str, enum.Enum):
    pending = "PENDING"
    accepted = "ACCEPTED"
    rejected = "REJECTED"
    expired = "EXPIRED"
    closed = "CLOSED"


class PaymentMethod(str, enum.Enum):
    card = "CARD"
    apple_pay = "APPLE_PAY"
    google_pay = "GOOGLE_PAY"
    paypal = "PAYPAL"
    satispay = "SATISPAY"


class SongRequest(Base):
    __tablename__ = "song_requests"

    request_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String(36), ForeignKey("djs.dj_id"), nullable=False, index=True)
    song_title = Column(String(255), nullable=False)
    artist_name = Column(String(255), nullable=False)
    requester_name = Column(String(100), nullable=False)
    requester_email = Column(String(255), nullable=True)
    donation_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    payment_method = Column(SAEnum(PaymentMethod, native_enum=False), nullable=False)
    payment_hold_ref = Column(String(255), nullable=True, unique=True)
    status = Column(SAEnum(RequestStatus, native_enum=False), nullable=False, default=RequestStatus.pending, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
