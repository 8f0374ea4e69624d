"""Pydantic schemas for song requests."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from app.models.song_request import PaymentMethod


class SongRequestCreate(BaseModel):
    event_code: str = Field(min_length=1, max_length=6)
    song_title: str = Field(min_length=1, max_length=255)
    artist_name: str = Field(min_length=1, max_length=255)
    requester_name: str = Field(min_length=1, max_length=100)
    requester_email: Optional[EmailStr] = None
    donation_amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: PaymentMethod
    payment_hold_ref: Optional[str] = None  # hold already placed by the client checkout
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class PublicSongRequestOut(BaseModel):
    request_id: str
    song_title: str
    artist_name: str
    requester_name: str
    status: str
    created_at: datetime
    expires_at: datetime
    time_remaining_seconds: int

    model_config = {"from_attributes": True}


class SongRequestOut(PublicSongRequestOut):
    dj_id: str
    requester_email: Optional[str] = None
    donation_amount: Decimal
    currency: str
    payment_method: str
    payment_hold_ref: Optional[str] = None
    resolved_at: Optional[datetime] = None


class SongRequestCreated(SongRequestOut):
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    redirect_url: Optional[str] = None
