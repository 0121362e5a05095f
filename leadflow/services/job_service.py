"""Job service - the database-backed queue behind the processor and sweeps."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadflow.db.enums import JobStatus, JobType
from leadflow.db.models import Job

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int = 3,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _now(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
        max_attempts=max_attempts,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def schedule_job_once(
    db: Session,
    job_type: JobType,
    payload: dict,
    idempotency_key: str,
    run_at: datetime | None = None,
) -> tuple[Job, bool]:
    """
    Schedule a job unless one with the same idempotency key exists.

    Returns (job, created).
    """
    existing = get_job_by_idempotency_key(db, idempotency_key)
    if existing:
        return existing, False
    try:
        return schedule_job(db, job_type, payload, run_at=run_at, idempotency_key=idempotency_key), True
    except IntegrityError:
        db.rollback()
        existing = get_job_by_idempotency_key(db, idempotency_key)
        if existing is None:
            raise
        return existing, False


def get_job(db: Session, job_id: str) -> Job | None:
    return db.get(Job, job_id)


def get_job_by_idempotency_key(db: Session, idempotency_key: str) -> Job | None:
    return db.execute(
        select(Job).where(Job.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Rows are locked with SKIP LOCKED so concurrent workers never pick the
    same job (a no-op on backends without row locks).
    """
    return list(
        db.execute(
            select(Job)
            .where(Job.status == JobStatus.PENDING.value, Job.run_at <= _now())
            .order_by(Job.run_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        ).scalars()
    )


def list_jobs(
    db: Session,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    query = select(Job)
    if status:
        query = query.where(Job.status == status.value)
    if job_type:
        query = query.where(Job.job_type == job_type.value)
    return list(db.execute(query.order_by(Job.created_at.desc()).limit(limit)).scalars())


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = _now()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job


def requeue_job(db: Session, job: Job, run_at: datetime | None = None) -> Job:
    """Put a finished job back on the queue with a fresh attempt budget."""
    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.run_at = run_at or _now()
    job.completed_at = None
    db.commit()
    db.refresh(job)
    logger.info("Job %s requeued", job.id)
    return job
