"""Submission gateway - the synchronous three-step signup state machine.

Created -> CodeRequested/CodeSent -> Verified -> Completed -> Queued

Each step is idempotent per (submission_id, step, request_id): the first
accepted request writes a step-history row holding its response, and a
retry of the same request replays that response without side effects.
Every status change is a conditional update committed together with its
step-history row before the response is returned.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from leadflow.core.encryption import hash_email, hash_phone
from leadflow.core.errors import (
    InternalError,
    RateLimitError,
    SecurityError,
    SequenceError,
    ValidationError,
    VerificationError,
)
from leadflow.core.geo import UNKNOWN_LOCATION, GeoLocation
from leadflow.core.structured_logging import build_log_context, mask_digest, mask_email
from leadflow.db.enums import (
    BuilderStatus,
    ContactType,
    CountryClassification,
    DomainPolicyType,
    PendingReviewReason,
    RateLimitDimension,
    SecurityEventType,
    SubmissionStatus,
    SubmissionStep,
)
from leadflow.db.models import Submission
from leadflow.schemas.submissions import Step1Payload, Step2Payload, Step3Payload, StepResponse
from leadflow.services import (
    audit_service,
    dispatch_service,
    policy_service,
    rate_limit_service,
    submission_store,
    verification_service,
)
from leadflow.services.captcha_service import CaptchaUnavailable
from leadflow.services.clients import ExternalClients
from leadflow.services.enrichment_service import CompanyIdentity
from leadflow.services.provisioning_service import ProvisioningClient, builder_status_from_country
from leadflow.services.verification_service import CODE_STATUSES, CodeCheck, VerificationDeliveryError
from leadflow.utils.identifiers import generate_external_id
from leadflow.utils.normalization import email_domain, normalize_email, normalize_name, normalize_phone

logger = logging.getLogger(__name__)

# Namespace for deriving step-1 submission ids from (identity, form, request id)
SUBMISSION_NAMESPACE = uuid.UUID("6f1c1f0e-4d2b-5a8e-9c47-2b7d0e3a51c9")


@dataclass(frozen=True)
class StepContext:
    """Request metadata recorded with every step."""

    request_id: str
    ip_address: str | None = None
    user_agent: str | None = None
    origin: str | None = None
    location: GeoLocation = field(default=UNKNOWN_LOCATION)

    def actor(self) -> dict[str, Any]:
        return {"ip": self.ip_address, "user_agent": self.user_agent, "origin": self.origin}


def derive_submission_id(client_identity: str, form_name: str, request_id: str) -> str:
    return str(uuid.uuid5(SUBMISSION_NAMESPACE, f"{client_identity}:{form_name}:{request_id}"))


def _replay(db: Session, submission_id: str, step: SubmissionStep, request_id: str) -> StepResponse | None:
    entry = submission_store.find_step(db, submission_id, step, request_id)
    if entry is None:
        return None
    logger.info(
        "Replaying step response",
        extra=build_log_context(request_id=request_id, submission_id=submission_id, step=step.value),
    )
    return StepResponse.model_validate(entry.response)


def _record_step(
    db: Session,
    submission: Submission,
    step: SubmissionStep,
    ctx: StepContext,
    response: StepResponse,
    geo: dict[str, Any] | None = None,
) -> StepResponse:
    """Append the step row and commit. A concurrent twin of the same request replays."""
    submission_id = submission.submission_id
    submission_store.append_step(
        db,
        submission_id=submission_id,
        step=step,
        request_id=ctx.request_id,
        status_after=SubmissionStatus(response.status),
        actor=ctx.actor(),
        geo=geo if geo is not None else ctx.location.to_dict(),
        response=response.to_wire(),
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        replay = _replay(db, submission_id, step, ctx.request_id)
        if replay is None:
            raise
        return replay
    logger.info(
        "Step accepted status=%s",
        response.status,
        extra=build_log_context(
            request_id=ctx.request_id,
            submission_id=submission_id,
            step=step.value,
            form_name=submission.form_name,
        ),
    )
    return response


def _load_for_step(db: Session, submission_id: str, form_name: str) -> Submission:
    submission = submission_store.get_submission(db, submission_id)
    if submission is None or submission.form_name != form_name:
        raise SequenceError("Submission not found; please start again")
    return submission


def _contact_blocked() -> RateLimitError:
    return RateLimitError("This signup cannot be accepted", reason="contact_blocked")


async def resolve_builder_status(
    provisioning: ProvisioningClient,
    location: GeoLocation,
    classification: CountryClassification,
) -> BuilderStatus:
    """Best effort: provisioning availability, else derived from the country verdict."""
    if classification == CountryClassification.BLOCKED:
        return BuilderStatus.UNAVAILABLE
    status = await provisioning.get_builder_status(location.country, location.region)
    return status or builder_status_from_country(classification)


# =============================================================================
# Step 1 - identity, company, CAPTCHA
# =============================================================================


async def accept_step1(
    db: Session,
    payload: Step1Payload,
    ctx: StepContext,
    clients: ExternalClients,
) -> StepResponse:
    email = normalize_email(payload.email)
    client_identity = hash_email(email)
    form_name = payload.form_name
    submission_id = derive_submission_id(client_identity, form_name, ctx.request_id)

    replay = _replay(db, submission_id, SubmissionStep.STEP1, ctx.request_id)
    if replay:
        return replay

    try:
        captcha_ok = await clients.captcha.verify(payload.turnstile_token, ctx.ip_address)
    except CaptchaUnavailable:
        audit_service.log_security_event(
            db,
            SecurityEventType.CAPTCHA_UNAVAILABLE,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            client_identity=client_identity,
            form_name=form_name,
        )
        raise SecurityError("CAPTCHA verification is unavailable; please retry")
    if not captcha_ok:
        audit_service.log_security_event(
            db,
            SecurityEventType.CAPTCHA_FAILED,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            client_identity=client_identity,
            form_name=form_name,
        )
        raise SecurityError("CAPTCHA verification failed")

    domain = email_domain(email)
    if policy_service.is_block_listed(db, ContactType.EMAIL, client_identity) or (
        policy_service.is_block_listed(db, ContactType.DOMAIN, domain)
    ):
        logger.info(
            "Signup refused for block-listed contact %s",
            mask_email(email),
            extra=build_log_context(request_id=ctx.request_id, form_name=form_name),
        )
        raise _contact_blocked()

    domain_allowed = policy_service.is_allow_listed(
        db, ContactType.EMAIL, client_identity
    ) or policy_service.is_allow_listed(db, ContactType.DOMAIN, domain)
    domain_policy = policy_service.get_domain_policy(db, domain)
    if domain_policy in (DomainPolicyType.DISPOSABLE, DomainPolicyType.BLOCKED) and not domain_allowed:
        raise ValidationError(
            "Please use your work email address",
            errors=[{"field": "email", "message": "Email domain is not accepted"}],
        )

    classification = policy_service.classify_country(db, ctx.location)

    if not rate_limit_service.validate(
        db,
        RateLimitDimension.EMAIL,
        form_name=form_name,
        email_identity=client_identity,
        exclude_submission_id=submission_id,
    ):
        raise RateLimitError(reason=RateLimitDimension.EMAIL.value)

    builder_status = await resolve_builder_status(clients.provisioning, ctx.location, classification)

    envelope = {
        "email": email,
        "first_name": normalize_name(payload.first_name),
        "last_name": normalize_name(payload.last_name),
        "company": normalize_name(payload.company),
        "job_title": normalize_name(payload.job_title),
        "country": payload.country.upper() if payload.country else None,
        "campaign": payload.campaign,
    }
    submission = Submission(
        client_identity=client_identity,
        submission_id=submission_id,
        form_name=form_name,
        status=SubmissionStatus.CREATED.value,
        contact_envelope=submission_store.dump_envelope(envelope),
        turnstile_validated=True,
        country_code=ctx.location.country,
        region=ctx.location.region,
        country_classification=classification.value,
        builder_status=builder_status.value,
        pending_review_reasons=[],
    )
    response = StepResponse(
        submission_id=submission_id,
        status=SubmissionStatus.CREATED.value,
        country_type=classification.value,
        country_blocked=classification == CountryClassification.BLOCKED,
        builder_status=builder_status.value,
    )

    db.add(submission)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        replay = _replay(db, submission_id, SubmissionStep.STEP1, ctx.request_id)
        if replay:
            return replay
        raise SequenceError("Submission already exists; please retry")

    logger.info(
        "Submission created identity=%s country=%s builder=%s",
        mask_digest(client_identity),
        classification.value,
        builder_status.value,
        extra=build_log_context(request_id=ctx.request_id, submission_id=submission_id, form_name=form_name),
    )
    return _record_step(db, submission, SubmissionStep.STEP1, ctx, response)


# =============================================================================
# Step 2 - phone verification (request / verify)
# =============================================================================


async def accept_step2(
    db: Session,
    payload: Step2Payload,
    ctx: StepContext,
    clients: ExternalClients,
) -> StepResponse:
    submission = _load_for_step(db, payload.submission_id, payload.form_name)
    step = SubmissionStep.STEP2_REQUEST if payload.mode == "request" else SubmissionStep.STEP2_VERIFY

    replay = _replay(db, submission.submission_id, step, ctx.request_id)
    if replay:
        return replay

    if not submission.turnstile_validated:
        raise SequenceError("Complete the first step before verifying a phone number")

    if payload.mode == "request":
        return await _request_code(db, submission, payload, ctx, clients)
    return _verify_code(db, submission, payload, ctx)


def _normalized_phone(phone: str, submission: Submission, envelope: dict[str, Any]) -> str:
    try:
        return normalize_phone(phone, submission.country_code or envelope.get("country"))
    except ValueError:
        raise ValidationError(
            "Invalid phone number",
            errors=[{"field": "phone", "message": "Enter a valid phone number"}],
        )


async def _request_code(
    db: Session,
    submission: Submission,
    payload: Step2Payload,
    ctx: StepContext,
    clients: ExternalClients,
) -> StepResponse:
    if submission.status_enum not in verification_service.ISSUABLE_STATUSES:
        raise SequenceError("A verification code can no longer be requested for this submission")

    envelope = submission_store.load_envelope(submission)
    phone = _normalized_phone(payload.phone, submission, envelope)
    phone_hash = hash_phone(phone)

    if policy_service.is_block_listed(db, ContactType.PHONE, phone_hash):
        raise _contact_blocked()
    if not rate_limit_service.validate(
        db,
        RateLimitDimension.PHONE,
        form_name=submission.form_name,
        phone_identity=phone_hash,
        exclude_submission_id=submission.submission_id,
    ):
        raise RateLimitError(reason=RateLimitDimension.PHONE.value)
    if not rate_limit_service.validate(
        db,
        RateLimitDimension.COMBINED,
        form_name=submission.form_name,
        email_identity=submission.client_identity,
        phone_identity=phone_hash,
        exclude_submission_id=submission.submission_id,
    ):
        raise RateLimitError(reason=RateLimitDimension.COMBINED.value)

    reasons = list(submission.pending_review_reasons or [])
    domain = email_domain(envelope.get("email"))
    if policy_service.get_domain_policy(db, domain) == DomainPolicyType.FREE:
        allowed = policy_service.is_allow_listed(
            db, ContactType.EMAIL, submission.client_identity
        ) or policy_service.is_allow_listed(db, ContactType.DOMAIN, domain)
        if not allowed and PendingReviewReason.FREE_EMAIL_DOMAIN.value not in reasons:
            reasons.append(PendingReviewReason.FREE_EMAIL_DOMAIN.value)

    enrichment_json = submission.enrichment_json
    if enrichment_json is None and PendingReviewReason.ENRICHMENT_NO_MATCH.value not in reasons:
        result = await clients.enrichment.enrich(
            CompanyIdentity(
                domain=domain,
                company_name=envelope.get("company"),
                country=submission.country_code or envelope.get("country"),
            ),
            form_fields={"company_name": envelope.get("company"), "domain": domain},
        )
        if result is None:
            reasons.append(PendingReviewReason.ENRICHMENT_NO_MATCH.value)
        else:
            enrichment_json = result.to_dict()

    envelope["phone"] = phone
    try:
        issued = await verification_service.issue_code(
            db,
            submission,
            phone_e164=phone,
            channel=payload.verification_method,
            client=clients.verification_channel,
            extra_values={
                "phone_hash": phone_hash,
                "contact_envelope": submission_store.dump_envelope(envelope),
                "pending_review_reasons": reasons,
                "enrichment_json": enrichment_json,
            },
        )
    except VerificationDeliveryError as exc:
        logger.error(
            "Verification delivery failed (%s)",
            exc,
            extra=build_log_context(request_id=ctx.request_id, submission_id=submission.submission_id),
        )
        raise InternalError("We could not send a verification code; please retry", status_code=502)

    response = StepResponse(
        submission_id=submission.submission_id,
        status=SubmissionStatus.CODE_SENT.value,
        reference_id=issued.reference_id,
    )
    return _record_step(db, submission, SubmissionStep.STEP2_REQUEST, ctx, response)


_CHECK_ERRORS = {
    CodeCheck.NO_CODE: ("Request a verification code first", "no_code"),
    CodeCheck.LOCKED: ("Too many incorrect attempts; request a new code", "too_many_attempts"),
    CodeCheck.EXPIRED: ("The verification code has expired; request a new code", "expired"),
}


def _verify_code(
    db: Session,
    submission: Submission,
    payload: Step2Payload,
    ctx: StepContext,
) -> StepResponse:
    status = submission.status_enum
    if status.rank >= SubmissionStatus.VERIFIED.rank:
        # Already verified: repeat verification is a no-op
        return StepResponse(
            submission_id=submission.submission_id,
            status=status.value,
            verified_at=submission_store.as_utc(submission.verified_at),
        )
    if status not in CODE_STATUSES:
        raise SequenceError("Request a verification code first")

    envelope = submission_store.load_envelope(submission)
    phone = _normalized_phone(payload.phone, submission, envelope)
    if hash_phone(phone) != submission.phone_hash:
        raise ValidationError(
            "Phone number does not match the number the code was sent to",
            errors=[{"field": "phone", "message": "Phone number changed; request a new code"}],
        )

    check = verification_service.check_code(submission, payload.code)
    if check in _CHECK_ERRORS:
        message, reason = _CHECK_ERRORS[check]
        raise VerificationError(message, reason=reason)
    if check == CodeCheck.MISMATCH:
        attempts = verification_service.record_failed_attempt(db, submission)
        logger.info(
            "Verification mismatch attempts=%s",
            attempts,
            extra=build_log_context(request_id=ctx.request_id, submission_id=submission.submission_id),
        )
        raise VerificationError(reason="mismatch")

    now = submission_store.utcnow()
    if not submission_store.transition(
        db,
        submission,
        from_statuses=CODE_STATUSES,
        to_status=SubmissionStatus.VERIFIED,
        values={"verified_at": now, "verification_code": None, "verification_attempts": 0},
        now=now,
    ):
        db.rollback()
        db.refresh(submission)
        if submission.status_enum == SubmissionStatus.VERIFIED:
            return StepResponse(
                submission_id=submission.submission_id,
                status=SubmissionStatus.VERIFIED.value,
                verified_at=submission_store.as_utc(submission.verified_at),
            )
        raise SequenceError("Submission changed during verification; please retry")

    response = StepResponse(
        submission_id=submission.submission_id,
        status=SubmissionStatus.VERIFIED.value,
        verified_at=now,
    )
    return _record_step(db, submission, SubmissionStep.STEP2_VERIFY, ctx, response)


# =============================================================================
# Step 3 - destination region, completion, dispatch
# =============================================================================


async def accept_step3(
    db: Session,
    payload: Step3Payload,
    ctx: StepContext,
) -> StepResponse:
    submission = _load_for_step(db, payload.submission_id, payload.form_name)

    replay = _replay(db, submission.submission_id, SubmissionStep.STEP3, ctx.request_id)
    if replay:
        return replay

    if submission.status_enum != SubmissionStatus.VERIFIED:
        raise SequenceError("Verify your phone number before completing signup")
    if submission.builder_status == BuilderStatus.PENDING.value:
        raise SequenceError("Signup for this location is pending review")

    now = submission_store.utcnow()
    external_id = generate_external_id()
    if not submission_store.transition(
        db,
        submission,
        from_statuses=(SubmissionStatus.VERIFIED,),
        to_status=SubmissionStatus.COMPLETED,
        values={
            "completed_at": now,
            "external_id": external_id,
            "destination_region": payload.region,
        },
        now=now,
    ):
        db.rollback()
        raise SequenceError("Submission changed while completing; please retry")

    response = StepResponse(
        submission_id=submission.submission_id,
        status=SubmissionStatus.COMPLETED.value,
        external_id=external_id,
        completed_at=now,
    )
    response = _record_step(db, submission, SubmissionStep.STEP3, ctx, response)

    # Fire and forget: a failed enqueue is picked up by the stranded-dispatch sweep
    try:
        db.refresh(submission)
        dispatch_service.dispatch_submission_completed(db, submission)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Dispatch failed; left for stranded sweep",
            extra=build_log_context(request_id=ctx.request_id, submission_id=submission.submission_id),
        )
    return response


async def accept_step(
    db: Session,
    payload: Step1Payload | Step2Payload | Step3Payload,
    ctx: StepContext,
    clients: ExternalClients,
) -> StepResponse:
    """Route a validated payload to its step handler."""
    if isinstance(payload, Step1Payload):
        return await accept_step1(db, payload, ctx, clients)
    if isinstance(payload, Step2Payload):
        return await accept_step2(db, payload, ctx, clients)
    return await accept_step3(db, payload, ctx)
