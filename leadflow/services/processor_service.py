"""Processor - consumes submission.completed events.

Order per event: claim (dedup guard) -> enrich -> score -> classify ->
downstream side effects -> final status. Nothing downstream is called
unless this invocation won the claim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.core.encryption import content_digest
from leadflow.core.errors import ExternalServiceDegradation
from leadflow.core.structured_logging import build_log_context
from leadflow.db.enums import PendingReviewReason, SubmissionFlag, SubmissionStatus
from leadflow.db.models import Submission
from leadflow.schemas.events import SubmissionEvent
from leadflow.services import (
    classification_service,
    dedup_service,
    spam_service,
    submission_store,
)
from leadflow.services.clients import ExternalClients
from leadflow.services.enrichment_service import CompanyIdentity, EnrichmentResult, merge_fields
from leadflow.utils.normalization import email_domain

logger = logging.getLogger(__name__)

PROCESSABLE_STATUSES = (SubmissionStatus.COMPLETED, SubmissionStatus.QUEUED)

FINAL_STATUS = {
    SubmissionFlag.GREEN: SubmissionStatus.SUCCEEDED,
    SubmissionFlag.YELLOW: SubmissionStatus.PENDING_REVIEW,
    SubmissionFlag.RED: SubmissionStatus.BLOCKED,
}


@dataclass(frozen=True)
class ProcessOutcome:
    message_id: str
    submission_id: str
    processed: bool
    status: str | None = None
    submission_flag: str | None = None


def status_reason(
    signals: classification_service.ClassificationSignals,
    flag: SubmissionFlag,
    reasons: list[str],
    spam_threshold: int,
) -> str | None:
    """Short machine-readable explanation stored with the final status."""
    if flag == SubmissionFlag.RED:
        if signals.country_blocked:
            return "country_blocked"
        if signals.spam_score > spam_threshold:
            return "spam_score"
        return "builder_unavailable"
    if reasons:
        return ",".join(reasons)
    if flag == SubmissionFlag.YELLOW:
        if not signals.enrichment_succeeded:
            return PendingReviewReason.ENRICHMENT_NO_MATCH.value
        return f"builder_{signals.builder_status.value if signals.builder_status else 'unknown'}"
    return None


async def _enrichment_for(
    submission: Submission,
    envelope: dict[str, Any],
    domain: str,
    clients: ExternalClients,
) -> EnrichmentResult | None:
    stored = EnrichmentResult.from_dict(submission.enrichment_json)
    if stored is not None:
        return stored
    if PendingReviewReason.ENRICHMENT_NO_MATCH.value in (submission.pending_review_reasons or []):
        return None
    return await clients.enrichment.enrich(
        CompanyIdentity(domain=domain, company_name=envelope.get("company"), country=submission.country_code),
        form_fields={"company_name": envelope.get("company"), "domain": domain},
    )


def _finalize(
    db: Session,
    submission: Submission,
    to_status: SubmissionStatus,
    values: dict[str, Any],
) -> bool:
    """Guarded final write, re-reading once if the dispatcher moved the row meanwhile."""
    for _ in range(2):
        if submission.status_enum not in PROCESSABLE_STATUSES:
            return False
        if submission_store.transition(
            db,
            submission,
            from_statuses=PROCESSABLE_STATUSES,
            to_status=to_status,
            values=values,
        ):
            db.commit()
            return True
        db.rollback()
        db.refresh(submission)
    return False


async def process_submission_event(
    db: Session,
    event: SubmissionEvent,
    clients: ExternalClients,
) -> ProcessOutcome:
    log_context = build_log_context(message_id=event.message_id, submission_id=event.submission_id)

    result = dedup_service.claim(db, event.message_id, content_digest(event.digest_payload()))
    if not result.claimed:
        return ProcessOutcome(message_id=event.message_id, submission_id=event.submission_id, processed=False)

    try:
        submission = submission_store.get_submission_by_identity(db, event.client_identity, event.submission_id)
        if submission is None or submission.status_enum not in PROCESSABLE_STATUSES:
            logger.info(
                "Event skipped: submission %s",
                "missing" if submission is None else f"already {submission.status}",
                extra=log_context,
            )
            dedup_service.mark_processed(db, event.message_id)
            return ProcessOutcome(
                message_id=event.message_id,
                submission_id=event.submission_id,
                processed=False,
                status=submission.status if submission else None,
                submission_flag=submission.submission_flag if submission else None,
            )

        envelope = submission_store.load_envelope(submission)
        domain = email_domain(envelope.get("email"))
        enrichment = await _enrichment_for(submission, envelope, domain, clients)
        spam_score = spam_service.score_submission(db, submission, email_domain=domain, enrichment=enrichment)
        threshold = settings.SPAM_SCORE_THRESHOLD
        signals = classification_service.signals_for(submission, enrichment, spam_score)
        flag = classification_service.classify_signals(signals, spam_threshold=threshold)
    except Exception:
        # No side effect has run yet: free the claim for a redelivery
        db.rollback()
        dedup_service.release(db, event.message_id)
        raise

    reasons = list(submission.pending_review_reasons or [])
    errors: list[str] = []
    contact = {
        key: envelope.get(key)
        for key in ("email", "first_name", "last_name", "phone", "job_title", "country")
    }
    company = merge_fields(
        {"company_name": envelope.get("company"), "domain": domain},
        [enrichment.fields] if enrichment else [],
    )

    if flag == SubmissionFlag.GREEN:
        try:
            await clients.provisioning.provision(
                external_id=submission.external_id,
                destination_region=submission.destination_region,
                form_name=submission.form_name,
                contact=contact,
                company=company,
            )
        except ExternalServiceDegradation as exc:
            logger.warning("Provisioning degraded: %s", exc, extra=log_context)
            reasons.append(PendingReviewReason.PROVISIONING_FAILED.value)
            errors.append(str(exc))

    if flag in (SubmissionFlag.GREEN, SubmissionFlag.YELLOW):
        try:
            await clients.marketing.submit_lead(
                external_id=submission.external_id,
                form_name=submission.form_name,
                flag=flag.value,
                contact=contact,
                company=company,
            )
        except ExternalServiceDegradation as exc:
            logger.warning("Marketing submission degraded: %s", exc, extra=log_context)
            reasons.append(PendingReviewReason.MARKETING_FAILED.value)
            errors.append(str(exc))

    final_status = FINAL_STATUS[flag]
    if errors and final_status == SubmissionStatus.SUCCEEDED:
        final_status = SubmissionStatus.PENDING_REVIEW

    finalized = _finalize(
        db,
        submission,
        final_status,
        {
            "submission_flag": flag.value,
            "spam_score": spam_score,
            "processed_at": submission_store.utcnow(),
            "pending_review_reasons": reasons,
            "submission_status_reason": status_reason(signals, flag, reasons, threshold),
            "processing_error": "; ".join(errors) or None,
            "enrichment_json": enrichment.to_dict() if enrichment else None,
        },
    )
    dedup_service.mark_processed(db, event.message_id)

    if not finalized:
        logger.warning("Final status not written; submission moved concurrently", extra=log_context)
        return ProcessOutcome(
            message_id=event.message_id,
            submission_id=event.submission_id,
            processed=False,
            status=submission.status,
            submission_flag=submission.submission_flag,
        )

    logger.info(
        "Submission processed flag=%s status=%s spam=%s",
        flag.value,
        final_status.value,
        spam_score,
        extra=log_context,
    )
    return ProcessOutcome(
        message_id=event.message_id,
        submission_id=event.submission_id,
        processed=True,
        status=final_status.value,
        submission_flag=flag.value,
    )
