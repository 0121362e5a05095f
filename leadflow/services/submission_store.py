"""Persistence primitives for submissions: lookups, guarded transitions, step history."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leadflow.db.enums import SubmissionStatus, SubmissionStep
from leadflow.db.models import Submission, SubmissionStepEvent


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_submission(db: Session, submission_id: str) -> Submission | None:
    return db.execute(
        select(Submission).where(Submission.submission_id == submission_id)
    ).scalar_one_or_none()


def get_submission_by_identity(
    db: Session, client_identity: str, submission_id: str
) -> Submission | None:
    return db.get(Submission, (client_identity, submission_id))


def transition(
    db: Session,
    submission: Submission,
    *,
    from_statuses: Iterable[SubmissionStatus],
    to_status: SubmissionStatus | None = None,
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Conditionally update a submission.

    The row must still carry the version and one of the statuses the caller
    read; otherwise nothing is written and False is returned. Does not
    commit: the caller commits together with any step-history row.
    """
    allowed = [s.value for s in from_statuses]
    current = SubmissionStatus(submission.status)
    if to_status is not None and to_status.rank < current.rank:
        raise ValueError(f"Status cannot move backwards ({current.value} -> {to_status.value})")

    updates = dict(values or {})
    if to_status is not None:
        updates["status"] = to_status.value
    updates["updated_at"] = now or utcnow()
    updates["version"] = submission.version + 1

    result = db.execute(
        update(Submission)
        .where(
            Submission.client_identity == submission.client_identity,
            Submission.submission_id == submission.submission_id,
            Submission.version == submission.version,
            Submission.status.in_(allowed),
        )
        .values(**updates)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def find_step(
    db: Session, submission_id: str, step: SubmissionStep, request_id: str
) -> SubmissionStepEvent | None:
    return db.execute(
        select(SubmissionStepEvent).where(
            SubmissionStepEvent.submission_id == submission_id,
            SubmissionStepEvent.step == step.value,
            SubmissionStepEvent.request_id == request_id,
        )
    ).scalar_one_or_none()


def append_step(
    db: Session,
    *,
    submission_id: str,
    step: SubmissionStep,
    request_id: str,
    status_after: SubmissionStatus,
    actor: dict[str, Any],
    geo: dict[str, Any],
    response: dict[str, Any],
) -> SubmissionStepEvent:
    entry = SubmissionStepEvent(
        submission_id=submission_id,
        step=step.value,
        request_id=request_id,
        status_after=status_after.value,
        actor=actor,
        geo=geo,
        response=response,
    )
    db.add(entry)
    return entry


def dump_envelope(contact: dict[str, Any]) -> str:
    """Serialize the contact envelope; the column type encrypts it at rest."""
    return json.dumps(contact, sort_keys=True, separators=(",", ":"))


def load_envelope(submission: Submission) -> dict[str, Any]:
    if not submission.contact_envelope:
        return {}
    return json.loads(submission.contact_envelope)
