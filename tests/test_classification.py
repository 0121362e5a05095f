"""Classification engine and spam scoring."""

from datetime import timedelta

import pytest

from leadflow.db.enums import (
    BuilderStatus,
    CountryClassification,
    DomainPolicyType,
    SubmissionFlag,
)
from leadflow.services import policy_service, spam_service
from leadflow.services.classification_service import (
    ClassificationSignals,
    classify,
    classify_signals,
)
from leadflow.services.enrichment_service import EnrichmentResult
from leadflow.services.submission_store import utcnow

ENRICHED = EnrichmentResult(provider="primary", fields={"company_name": "Corp Inc", "industry": "Software"})


def _signals(**overrides) -> ClassificationSignals:
    values = {
        "builder_status": BuilderStatus.AVAILABLE,
        "country_blocked": False,
        "spam_score": 10,
        "enrichment_succeeded": True,
    }
    values.update(overrides)
    return ClassificationSignals(**values)


def test_all_clear_is_green():
    assert classify_signals(_signals(), spam_threshold=70) == SubmissionFlag.GREEN


@pytest.mark.parametrize(
    "overrides",
    [
        {"country_blocked": True},
        {"spam_score": 71},
        {"builder_status": BuilderStatus.UNAVAILABLE},
        # Red wins over every yellow signal
        {"country_blocked": True, "enrichment_succeeded": False, "builder_status": BuilderStatus.PENDING},
    ],
)
def test_red_signals(overrides):
    assert classify_signals(_signals(**overrides), spam_threshold=70) == SubmissionFlag.RED


@pytest.mark.parametrize(
    "overrides",
    [
        {"builder_status": BuilderStatus.CONSTRAINED},
        {"builder_status": BuilderStatus.PENDING},
        {"builder_status": None},
        {"enrichment_succeeded": False},
        {"review_requested": True},
    ],
)
def test_yellow_signals(overrides):
    assert classify_signals(_signals(**overrides), spam_threshold=70) == SubmissionFlag.YELLOW


def test_threshold_is_exclusive():
    assert classify_signals(_signals(spam_score=70), spam_threshold=70) == SubmissionFlag.GREEN


def test_classification_is_deterministic():
    signals = _signals(builder_status=BuilderStatus.CONSTRAINED)
    assert {classify_signals(signals, spam_threshold=70) for _ in range(10)} == {SubmissionFlag.YELLOW}


def test_classify_reads_submission_fields(make_submission):
    submission = make_submission(pending_review_reasons=["free_email_domain"])
    assert classify(submission, ENRICHED, 0, spam_threshold=70) == SubmissionFlag.YELLOW

    blocked = make_submission(
        email="b@corp.com",
        country_classification=CountryClassification.BLOCKED.value,
    )
    assert classify(blocked, ENRICHED, 0, spam_threshold=70) == SubmissionFlag.RED


def test_spam_score_clean_submission(db, make_submission):
    submission = make_submission(completed_at=utcnow() + timedelta(minutes=5))
    assert spam_service.score_submission(db, submission, email_domain="corp.com", enrichment=ENRICHED) == 0


def test_spam_score_accumulates_signals(db, make_submission):
    policy_service.upsert_domain_policy(db, "mailinator.com", DomainPolicyType.DISPOSABLE)
    submission = make_submission(
        email="x@mailinator.com",
        country_classification=CountryClassification.UNKNOWN.value,
    )
    submission.completed_at = submission.created_at + timedelta(seconds=5)

    score = spam_service.score_submission(db, submission, email_domain="mailinator.com", enrichment=None)
    # disposable 60 + unknown country 15 + no enrichment 20 + fast completion 30, clamped
    assert score == 100


def test_spam_score_free_domain_quick_completion(db, make_submission):
    policy_service.upsert_domain_policy(db, "gmail.com", DomainPolicyType.FREE)
    submission = make_submission(email="x@gmail.com")
    submission.completed_at = submission.created_at + timedelta(seconds=45)

    assert spam_service.score_submission(db, submission, email_domain="gmail.com", enrichment=ENRICHED) == 30
