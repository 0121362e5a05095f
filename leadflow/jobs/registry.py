"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from leadflow.db.enums import JobType
from leadflow.jobs.handlers import maintenance, submissions

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.SUBMISSION_COMPLETED.value: submissions.process_submission_completed,
    JobType.DEDUP_CLAIM_PURGE.value: maintenance.process_dedup_claim_purge,
    JobType.STRANDED_DISPATCH_SWEEP.value: maintenance.process_stranded_dispatch_sweep,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
