"""Pydantic schemas for the play queue."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel


class QueueReorder(BaseModel):
    queue_item_ids: list[str]


class PublicQueueItemOut(BaseModel):
    item_id: str
    position: int
    song_title: str
    artist_name: str
    requester_name: str
    status: str
    added_at: Optional[datetime] = None
    played_at: Optional[datetime] = None
    is_now_playing: bool


class QueueItemOut(PublicQueueItemOut):
    request_id: str
    requester_email: Optional[str] = None
    donation_amount: Decimal
    payment_method: str


class DJQueueOut(BaseModel):
    queue: list[QueueItemOut]
    total_earnings: Decimal
