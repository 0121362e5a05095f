"""Background job queue model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.db.base import Base
from leadflow.db.enums import DEFAULT_JOB_STATUS
from leadflow.db.types import JsonType


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Job(Base):
    """
    Background job for async processing.

    Used for: submission processing events, dedup-claim purges, stranded
    dispatch sweeps. Worker polls for pending jobs and processes them.
    """

    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_pending", "status", "run_at"),
        Index("uq_job_idempotency", "idempotency_key", unique=True),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    run_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_JOB_STATUS.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Idempotency key for deduplication (NULLs never collide)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
