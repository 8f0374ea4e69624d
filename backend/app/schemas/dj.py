"""Pydantic schemas for DJs, event summaries and event stats."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class DJCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=2, max_length=100)
    min_donation: Decimal = Field(default=Decimal("1.00"), gt=0, le=1000)


class DJUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    min_donation: Optional[Decimal] = Field(default=None, gt=0, le=1000)
    stripe_account_id: Optional[str] = None
    paypal_email: Optional[EmailStr] = None
    satispay_id: Optional[str] = None


class DJOut(BaseModel):
    dj_id: str
    email: str
    name: str
    event_code: str
    min_donation: Decimal
    stripe_account_id: Optional[str] = None
    paypal_email: Optional[str] = None
    satispay_id: Optional[str] = None
    event_started_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class EventSummaryOut(BaseModel):
    summary_id: str
    dj_id: str
    event_code: str
    total_requests: int
    accepted_requests: int
    rejected_requests: int
    expired_requests: int
    closed_requests: int
    played_songs: int
    skipped_songs: int
    total_earnings: Decimal
    started_at: datetime
    ended_at: datetime

    model_config = {"from_attributes": True}


class RotateEventCodeOut(BaseModel):
    event_code: str
    event_url: str
    previous_event_summary: EventSummaryOut


class EventStatsOut(BaseModel):
    event_code: str
    started_at: datetime
    total_requests: int
    pending_requests: int
    accepted_requests: int
    rejected_requests: int
    expired_requests: int
    queue_length: int
    played_songs: int
    skipped_songs: int
    total_earnings: Decimal
