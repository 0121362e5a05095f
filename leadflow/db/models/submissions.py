"""Signup submission models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leadflow.db.base import Base
from leadflow.db.enums import SubmissionStatus
from leadflow.db.types import EncryptedString, EncryptedText, JsonType


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    """
    A multi-step signup, keyed by (client_identity, submission_id).

    client_identity is the HMAC digest of the normalized email. Raw contact
    details only exist inside the encrypted contact_envelope.
    Every status change goes through a conditional update on `version`.
    """

    __tablename__ = "submissions"
    __table_args__ = (
        Index("uq_submissions_submission_id", "submission_id", unique=True),
        Index("idx_submissions_phone_hash", "phone_hash"),
        Index("idx_submissions_identity_form_completed", "client_identity", "form_name", "completed_at"),
        Index("idx_submissions_status_completed", "status", "completed_at"),
    )

    client_identity: Mapped[str] = mapped_column(String(64), primary_key=True)
    submission_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    form_name: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=SubmissionStatus.CREATED.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Contact digests and encrypted envelope (JSON: email, names, company, phone)
    phone_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contact_envelope: Mapped[str | None] = mapped_column(EncryptedText, nullable=True)

    turnstile_validated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Geo / policy verdicts
    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    region: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country_classification: Mapped[str] = mapped_column(String(20), nullable=False)
    builder_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    destination_region: Mapped[str | None] = mapped_column(String(20), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(18), nullable=True, unique=True)

    # One-time verification code (single use, time bound)
    verification_code: Mapped[str | None] = mapped_column(EncryptedString, nullable=True)
    verification_reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    verification_channel: Mapped[str | None] = mapped_column(String(10), nullable=True)
    verification_issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verification_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Async outcome
    enrichment_json: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    pending_review_reasons: Mapped[list] = mapped_column(JsonType, nullable=False, default=list)
    submission_status_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submission_flag: Mapped[str | None] = mapped_column(String(10), nullable=True)
    spam_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    steps: Mapped[list["SubmissionStepEvent"]] = relationship(
        order_by="SubmissionStepEvent.id",
        viewonly=True,
    )

    @property
    def status_enum(self) -> SubmissionStatus:
        return SubmissionStatus(self.status)


class SubmissionStepEvent(Base):
    """
    Append-only step history entry.

    The (submission_id, step, request_id) constraint makes a retried request
    land on the existing row; `response` lets the retry replay the answer.
    """

    __tablename__ = "submission_steps"
    __table_args__ = (
        UniqueConstraint("submission_id", "step", "request_id", name="uq_submission_step_request"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("submissions.submission_id", ondelete="CASCADE"),
        nullable=False,
    )
    step: Mapped[str] = mapped_column(String(20), nullable=False)
    request_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status_after: Mapped[str] = mapped_column(String(30), nullable=False)

    actor: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    geo: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    response: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_now)


@event.listens_for(SubmissionStepEvent, "before_update")
def _reject_step_update(mapper, connection, target) -> None:
    raise ValueError("Step history entries are immutable")


@event.listens_for(SubmissionStepEvent, "before_delete")
def _reject_step_delete(mapper, connection, target) -> None:
    raise ValueError("Step history entries are immutable")
