"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates all tables for the DJ request service:
djs, song_requests, queue_items, event_summaries.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- djs ---
    op.create_table(
        "djs",
        sa.Column("dj_id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("event_code", sa.String(6), nullable=False, unique=True),
        sa.Column("min_donation", sa.Numeric(10, 2), nullable=False, server_default="1.00"),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        sa.Column("paypal_email", sa.String(255), nullable=True),
        sa.Column("satispay_id", sa.String(255), nullable=True),
        sa.Column("event_started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_djs_event_code", "djs", ["event_code"])

    # --- song_requests ---
    op.create_table(
        "song_requests",
        sa.Column("request_id", sa.String(36), primary_key=True),
        sa.Column("dj_id", sa.String(36), sa.ForeignKey("djs.dj_id"), nullable=False),
        sa.Column("song_title", sa.String(255), nullable=False),
        sa.Column("artist_name", sa.String(255), nullable=False),
        sa.Column("requester_name", sa.String(100), nullable=False),
        sa.Column("requester_email", sa.String(255), nullable=True),
        sa.Column("donation_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_hold_ref", sa.String(255), nullable=True, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_song_requests_dj_id", "song_requests", ["dj_id"])
    op.create_index("ix_song_requests_status", "song_requests", ["status"])

    # --- queue_items ---
    op.create_table(
        "queue_items",
        sa.Column("item_id", sa.String(36), primary_key=True),
        sa.Column("dj_id", sa.String(36), sa.ForeignKey("djs.dj_id"), nullable=False),
        sa.Column("request_id", sa.String(36), sa.ForeignKey("song_requests.request_id"), nullable=False, unique=True),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("dj_id", "position", name="uq_queue_items_dj_position"),
    )
    op.create_index("ix_queue_items_dj_id", "queue_items", ["dj_id"])

    # --- event_summaries ---
    op.create_table(
        "event_summaries",
        sa.Column("summary_id", sa.String(36), primary_key=True),
        sa.Column("dj_id", sa.String(36), sa.ForeignKey("djs.dj_id"), nullable=False),
        sa.Column("event_code", sa.String(6), nullable=False),
        sa.Column("total_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("accepted_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rejected_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expired_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("closed_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("played_songs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_songs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_event_summaries_dj_id", "event_summaries", ["dj_id"])


def downgrade() -> None:
    op.drop_table("event_summaries")
    op.drop_table("queue_items")
    op.drop_table("song_requests")
    op.drop_table("djs")
