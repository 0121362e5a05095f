"""Spam scoring from persisted submission signals (0-100, higher is worse)."""

from __future__ import annotations

from sqlalchemy.orm import Session

from leadflow.db.enums import CountryClassification, DomainPolicyType
from leadflow.db.models import Submission
from leadflow.services import policy_service
from leadflow.services.enrichment_service import EnrichmentResult
from leadflow.services.submission_store import as_utc

DOMAIN_WEIGHTS = {
    DomainPolicyType.FREE: 20,
    DomainPolicyType.DISPOSABLE: 60,
    DomainPolicyType.BLOCKED: 80,
}
COUNTRY_WEIGHTS = {
    CountryClassification.BLOCKED: 40,
    CountryClassification.UNKNOWN: 15,
}
NO_ENRICHMENT_WEIGHT = 20

# Humans do not finish three steps plus an SMS round trip this fast
FAST_COMPLETION_SECONDS = 20
QUICK_COMPLETION_SECONDS = 60


def completion_seconds(submission: Submission) -> float | None:
    created = as_utc(submission.created_at)
    completed = as_utc(submission.completed_at)
    if not created or not completed:
        return None
    return (completed - created).total_seconds()


def score_submission(
    db: Session,
    submission: Submission,
    *,
    email_domain: str | None,
    enrichment: EnrichmentResult | None,
) -> int:
    score = 0

    policy = policy_service.get_domain_policy(db, email_domain)
    if policy is not None:
        score += DOMAIN_WEIGHTS.get(policy, 0)

    try:
        score += COUNTRY_WEIGHTS.get(CountryClassification(submission.country_classification), 0)
    except ValueError:
        score += COUNTRY_WEIGHTS[CountryClassification.UNKNOWN]

    if enrichment is None:
        score += NO_ENRICHMENT_WEIGHT

    elapsed = completion_seconds(submission)
    if elapsed is not None:
        if elapsed < FAST_COMPLETION_SECONDS:
            score += 30
        elif elapsed < QUICK_COMPLETION_SECONDS:
            score += 10

    return max(0, min(100, score))
