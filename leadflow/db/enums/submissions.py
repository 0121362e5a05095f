"""Submission lifecycle enums."""

from enum import Enum


class SubmissionStatus(str, Enum):
    """
    Signup state machine.

    CREATED -> CODE_SENT -> VERIFIED -> COMPLETED -> QUEUED
    -> SUCCEEDED | PENDING_REVIEW | BLOCKED
    """

    CREATED = "created"
    CODE_REQUESTED = "code_requested"
    CODE_SENT = "code_sent"
    VERIFIED = "verified"
    COMPLETED = "completed"
    QUEUED = "queued"
    SUCCEEDED = "succeeded"
    PENDING_REVIEW = "pending_review"
    BLOCKED = "blocked"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    SubmissionStatus.CREATED: 0,
    SubmissionStatus.CODE_REQUESTED: 1,
    SubmissionStatus.CODE_SENT: 1,
    SubmissionStatus.VERIFIED: 2,
    SubmissionStatus.COMPLETED: 3,
    SubmissionStatus.QUEUED: 4,
    SubmissionStatus.SUCCEEDED: 5,
    SubmissionStatus.PENDING_REVIEW: 5,
    SubmissionStatus.BLOCKED: 5,
}


class SubmissionStep(str, Enum):
    """Step-history labels (one per accepted request kind)."""

    STEP1 = "1"
    STEP2_REQUEST = "2:request"
    STEP2_VERIFY = "2:verify"
    STEP3 = "3"


class BuilderStatus(str, Enum):
    """Coarse downstream-provisioning eligibility."""

    AVAILABLE = "available"
    CONSTRAINED = "constrained"
    PENDING = "pending"
    UNAVAILABLE = "unavailable"


class SubmissionFlag(str, Enum):
    """Processing directive from the classification engine."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class CountryClassification(str, Enum):
    ALLOW = "allow"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


class VerificationChannel(str, Enum):
    SMS = "sms"
    VOICE = "voice"


class PendingReviewReason(str, Enum):
    """Why a submission is routed to manual review."""

    FREE_EMAIL_DOMAIN = "free_email_domain"
    ENRICHMENT_NO_MATCH = "enrichment_no_match"
    PROVISIONING_FAILED = "provisioning_failed"
    MARKETING_FAILED = "marketing_failed"
