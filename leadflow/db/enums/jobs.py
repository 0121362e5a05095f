"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    SUBMISSION_COMPLETED = "submission_completed"
    DEDUP_CLAIM_PURGE = "dedup_claim_purge"
    STRANDED_DISPATCH_SWEEP = "stranded_dispatch_sweep"


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_JOB_STATUS: JobStatus = JobStatus.PENDING
