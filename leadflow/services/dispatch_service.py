"""Queue dispatcher - publishes submission.completed events onto the job queue."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.db.enums import JobStatus, JobType, SubmissionStatus
from leadflow.db.models import Job, Submission
from leadflow.schemas.events import SUBMISSION_COMPLETED_EVENT
from leadflow.services import dedup_service, job_service, submission_store

logger = logging.getLogger(__name__)


def idempotency_key_for(submission_id: str) -> str:
    return f"submission-completed:{submission_id}"


def build_event_payload(submission: Submission, *, message_id: str | None = None) -> dict:
    completed_at = submission_store.as_utc(submission.completed_at)
    return {
        "message_id": message_id or str(uuid.uuid4()),
        "event_type": SUBMISSION_COMPLETED_EVENT,
        "submission_id": submission.submission_id,
        "client_identity": submission.client_identity,
        "form_name": submission.form_name,
        "occurred_at": completed_at.isoformat() if completed_at else None,
    }


def dispatch_submission_completed(db: Session, submission: Submission) -> Job:
    """
    Enqueue the processing event for a Completed submission, then mark it Queued.

    A submission is enqueued at most once; a repeat dispatch finds the
    existing job and only retries the Queued transition.
    """
    job, created = job_service.schedule_job_once(
        db,
        JobType.SUBMISSION_COMPLETED,
        build_event_payload(submission),
        idempotency_key=idempotency_key_for(submission.submission_id),
    )
    if not created:
        logger.info("Dispatch already enqueued submission=%s job=%s", submission.submission_id, job.id)

    db.refresh(submission)
    if submission.status == SubmissionStatus.COMPLETED.value:
        if submission_store.transition(
            db,
            submission,
            from_statuses=(SubmissionStatus.COMPLETED,),
            to_status=SubmissionStatus.QUEUED,
        ):
            db.commit()
            db.refresh(submission)
        else:
            # The processor may already have moved it on
            db.rollback()
    return job


def redispatch_stranded(db: Session, *, now: datetime | None = None, limit: int = 100) -> int:
    """Re-enqueue Completed submissions whose dispatch never landed."""
    now = now or submission_store.utcnow()
    cutoff = now - timedelta(minutes=settings.DISPATCH_STRANDED_AFTER_MINUTES)
    stranded = list(
        db.execute(
            select(Submission)
            .where(
                Submission.status == SubmissionStatus.COMPLETED.value,
                Submission.completed_at <= cutoff,
            )
            .order_by(Submission.completed_at)
            .limit(limit)
        ).scalars()
    )
    for submission in stranded:
        dispatch_submission_completed(db, submission)
    if stranded:
        logger.warning("Re-dispatched %s stranded submissions", len(stranded))
    return len(stranded)


def requeue_stalled(db: Session, *, now: datetime | None = None, limit: int = 100) -> int:
    """
    Re-run Queued submissions whose processing stopped before a final status.

    The submission's job has finished (as a duplicate delivery, or out of
    attempts) and its dedup claim has expired, so re-running the same message
    takes the claim over. While the claim is live the submission is left alone.
    """
    now = now or submission_store.utcnow()
    cutoff = now - timedelta(minutes=settings.DISPATCH_STRANDED_AFTER_MINUTES)
    queued = list(
        db.execute(
            select(Submission)
            .where(
                Submission.status == SubmissionStatus.QUEUED.value,
                Submission.updated_at <= cutoff,
            )
            .order_by(Submission.updated_at)
            .limit(limit)
        ).scalars()
    )

    requeued = 0
    for submission in queued:
        job = job_service.get_job_by_idempotency_key(db, idempotency_key_for(submission.submission_id))
        if job is None:
            dispatch_submission_completed(db, submission)
            requeued += 1
            continue
        if job.status not in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
            continue
        message_id = (job.payload or {}).get("message_id")
        claim = dedup_service.get_claim(db, message_id) if message_id else None
        if claim is not None and submission_store.as_utc(claim.expires_at) >= now:
            continue
        job_service.requeue_job(db, job)
        requeued += 1
    if requeued:
        logger.warning("Requeued %s stalled submissions", requeued)
    return requeued
