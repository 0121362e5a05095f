"""Enum definitions for application constants."""

from leadflow.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from leadflow.db.enums.policies import (
    ContactType,
    CountryPolicyType,
    DedupStatus,
    DomainPolicyType,
    ListType,
    RateLimitDimension,
    SecurityEventType,
)
from leadflow.db.enums.submissions import (
    BuilderStatus,
    CountryClassification,
    PendingReviewReason,
    SubmissionFlag,
    SubmissionStatus,
    SubmissionStep,
    VerificationChannel,
)

__all__ = [
    "BuilderStatus",
    "ContactType",
    "CountryClassification",
    "CountryPolicyType",
    "DEFAULT_JOB_STATUS",
    "DedupStatus",
    "DomainPolicyType",
    "JobStatus",
    "JobType",
    "ListType",
    "PendingReviewReason",
    "RateLimitDimension",
    "SecurityEventType",
    "SubmissionFlag",
    "SubmissionStatus",
    "SubmissionStep",
    "VerificationChannel",
]
