"""Classification engine - maps submission signals to a processing directive.

Pure and deterministic: no I/O, no clock, no randomness.

- RED: country blocked, spam score over threshold, or builder unavailable
- YELLOW: builder constrained/pending/unknown, enrichment failed, or the
  submission was routed to review during the synchronous steps
- GREEN: everything else
"""

from __future__ import annotations

from dataclasses import dataclass

from leadflow.core.config import settings
from leadflow.db.enums import BuilderStatus, CountryClassification, SubmissionFlag
from leadflow.db.models import Submission
from leadflow.services.enrichment_service import EnrichmentResult


@dataclass(frozen=True)
class ClassificationSignals:
    builder_status: BuilderStatus | None
    country_blocked: bool
    spam_score: int
    enrichment_succeeded: bool
    review_requested: bool = False


def classify_signals(signals: ClassificationSignals, *, spam_threshold: int | None = None) -> SubmissionFlag:
    threshold = settings.SPAM_SCORE_THRESHOLD if spam_threshold is None else spam_threshold

    if signals.country_blocked:
        return SubmissionFlag.RED
    if signals.spam_score > threshold:
        return SubmissionFlag.RED
    if signals.builder_status == BuilderStatus.UNAVAILABLE:
        return SubmissionFlag.RED

    if signals.builder_status in (None, BuilderStatus.CONSTRAINED, BuilderStatus.PENDING):
        return SubmissionFlag.YELLOW
    if not signals.enrichment_succeeded:
        return SubmissionFlag.YELLOW
    if signals.review_requested:
        return SubmissionFlag.YELLOW

    return SubmissionFlag.GREEN


def signals_for(
    submission: Submission,
    enrichment: EnrichmentResult | None,
    spam_score: int,
) -> ClassificationSignals:
    builder_status = BuilderStatus(submission.builder_status) if submission.builder_status else None
    return ClassificationSignals(
        builder_status=builder_status,
        country_blocked=submission.country_classification == CountryClassification.BLOCKED.value,
        spam_score=spam_score,
        enrichment_succeeded=enrichment is not None,
        review_requested=bool(submission.pending_review_reasons),
    )


def classify(
    submission: Submission,
    enrichment: EnrichmentResult | None,
    spam_score: int,
    *,
    spam_threshold: int | None = None,
) -> SubmissionFlag:
    """Classify a submission given its enrichment outcome and spam score."""
    return classify_signals(signals_for(submission, enrichment, spam_score), spam_threshold=spam_threshold)
