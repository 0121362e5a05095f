"""Dedup claims for asynchronous event processing."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.db.base import Base
from leadflow.db.enums import DedupStatus


class DedupClaim(Base):
    """
    First-writer-wins claim on a queue message.

    Created with a conditional insert (primary key on message_id). A claim
    whose expires_at has passed counts as absent and may be re-claimed.
    """

    __tablename__ = "dedup_claims"
    __table_args__ = (Index("idx_dedup_claims_expires", "expires_at"),)

    message_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DedupStatus.PROCESSING.value
    )
    content_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
