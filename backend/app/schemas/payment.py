"""Pydantic schemas for payment holds and webhooks."""
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from app.models.song_request import PaymentMethod


class HoldCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    payment_method: PaymentMethod
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class HoldOut(BaseModel):
    payment_hold_ref: str
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None
    redirect_url: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    event_type: Optional[str] = None
