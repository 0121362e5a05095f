"""SQLAlchemy ORM models."""

from leadflow.db.models.audit import SecurityEvent
from leadflow.db.models.dedup import DedupClaim
from leadflow.db.models.jobs import Job
from leadflow.db.models.policies import AllowBlockEntry, CountryPolicy, DomainPolicy
from leadflow.db.models.submissions import Submission, SubmissionStepEvent

__all__ = [
    "AllowBlockEntry",
    "CountryPolicy",
    "DedupClaim",
    "DomainPolicy",
    "Job",
    "SecurityEvent",
    "Submission",
    "SubmissionStepEvent",
]
