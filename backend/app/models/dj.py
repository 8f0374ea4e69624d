"""DJ ORM model — one per account, owns requests, queue items and summaries."""
import uuid
from decimal import Decimal
from sqlalchemy import Column, String, DateTime, Numeric
from sqlalchemy.sql import func
from app.timeutils import utcnow
from app.database import Base


class DJ(Base):
    __tablename__ = "djs"

    dj_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    event_code = Column(String(6), nullable=False, unique=True, index=True)
    min_donation = Column(Numeric(10, 2), nullable=False, default=Decimal("1.00"))
    stripe_account_id = Column(String(255), nullable=True)
    paypal_email = Column(String(255), nullable=True)
    satispay_id = Column(String(255), nullable=True)
    event_started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
