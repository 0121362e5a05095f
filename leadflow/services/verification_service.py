"""Verification gateway - one-time phone codes over SMS or voice.

Codes are numeric, generated with `secrets`, stored encrypted on the
submission (never against the phone number) and cleared once used.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

import httpx
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.core.errors import SequenceError
from leadflow.db.enums import SubmissionStatus, VerificationChannel
from leadflow.db.models import Submission
from leadflow.services import submission_store

logger = logging.getLogger(__name__)

ISSUABLE_STATUSES = (
    SubmissionStatus.CREATED,
    SubmissionStatus.CODE_REQUESTED,
    SubmissionStatus.CODE_SENT,
)
CODE_STATUSES = (SubmissionStatus.CODE_REQUESTED, SubmissionStatus.CODE_SENT)


class VerificationDeliveryError(Exception):
    """The SMS/voice provider did not accept the code for delivery."""


class VerificationChannelClient(Protocol):
    async def send(self, phone_e164: str, code: str, channel: VerificationChannel) -> str:
        """Dispatch a code and return the provider's delivery reference id."""
        ...


class HttpVerificationChannel:
    """SMS/voice delivery over the provider's REST API."""

    def __init__(
        self,
        api_url: str | None = None,
        *,
        api_key: str | None = None,
        sender_id: str | None = None,
        timeout: float | None = None,
    ):
        self.api_url = (settings.SMS_API_URL if api_url is None else api_url).rstrip("/")
        self.api_key = settings.SMS_API_KEY if api_key is None else api_key
        self.sender_id = sender_id or settings.SMS_SENDER_ID
        self.timeout = timeout or settings.VERIFICATION_TIMEOUT_SECONDS

    async def send(self, phone_e164: str, code: str, channel: VerificationChannel) -> str:
        if not self.api_url:
            if settings.ENV == "dev":
                reference_id = f"dryrun-{uuid.uuid4().hex[:12]}"
                logger.info("[DRY RUN] Verification %s skipped ref=%s", channel.value, reference_id)
                return reference_id
            raise VerificationDeliveryError("SMS_API_URL not configured")

        spoken = " ".join(code)
        if channel == VerificationChannel.VOICE:
            endpoint = f"{self.api_url}/calls"
            body = {"to": phone_e164, "from": self.sender_id, "say": f"Your verification code is {spoken}"}
        else:
            endpoint = f"{self.api_url}/messages"
            body = {"to": phone_e164, "from": self.sender_id, "body": f"Your verification code is {code}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    endpoint, json=body, headers={"Authorization": f"Bearer {self.api_key}"}
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Verification %s delivery failed (%s)", channel.value, type(exc).__name__)
            raise VerificationDeliveryError(type(exc).__name__) from exc

        reference_id = data.get("id") or data.get("sid")
        if not reference_id:
            raise VerificationDeliveryError("Provider response missing reference id")
        return str(reference_id)


@dataclass(frozen=True)
class IssuedCode:
    reference_id: str
    channel: VerificationChannel
    issued_at: datetime


class CodeCheck(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    LOCKED = "too_many_attempts"
    NO_CODE = "no_code"


def generate_code(length: int | None = None) -> str:
    """Fixed-length, cryptographically random numeric code."""
    length = length or settings.VERIFICATION_CODE_LENGTH
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


async def issue_code(
    db: Session,
    submission: Submission,
    *,
    phone_e164: str,
    channel: VerificationChannel,
    client: VerificationChannelClient,
    extra_values: dict | None = None,
    now: datetime | None = None,
) -> IssuedCode:
    """
    Generate a code, persist it against the submission, then dispatch it.

    The code is committed (CODE_REQUESTED) before delivery so a delivered
    code is always verifiable; the delivery reference is recorded with the
    move to CODE_SENT.
    """
    if submission.status_enum not in ISSUABLE_STATUSES:
        raise SequenceError("A verification code can no longer be requested for this submission")

    now = now or submission_store.utcnow()
    code = generate_code()

    values = {
        **(extra_values or {}),
        "verification_code": code,
        "verification_channel": channel.value,
        "verification_issued_at": now,
        "verification_attempts": 0,
        "verification_reference_id": None,
    }
    if not submission_store.transition(
        db,
        submission,
        from_statuses=ISSUABLE_STATUSES,
        to_status=SubmissionStatus.CODE_REQUESTED,
        values=values,
        now=now,
    ):
        db.rollback()
        raise SequenceError("Submission changed while issuing a code; please retry")
    db.commit()

    reference_id = await client.send(phone_e164, code, channel)

    db.refresh(submission)
    if not submission_store.transition(
        db,
        submission,
        from_statuses=(SubmissionStatus.CODE_REQUESTED,),
        to_status=SubmissionStatus.CODE_SENT,
        values={"verification_reference_id": reference_id},
    ):
        db.rollback()
        raise SequenceError("Submission changed while issuing a code; please retry")
    db.commit()

    logger.info(
        "Verification code issued submission=%s channel=%s ref=%s",
        submission.submission_id,
        channel.value,
        reference_id,
    )
    return IssuedCode(reference_id=reference_id, channel=channel, issued_at=now)


def check_code(submission: Submission, supplied_code: str, *, now: datetime | None = None) -> CodeCheck:
    """Compare a supplied code with the stored one (constant time)."""
    if submission.verification_attempts >= settings.VERIFICATION_MAX_ATTEMPTS:
        return CodeCheck.LOCKED
    stored = submission.verification_code
    if not stored:
        return CodeCheck.NO_CODE

    issued_at = submission_store.as_utc(submission.verification_issued_at)
    now = now or submission_store.utcnow()
    if issued_at and now - issued_at > timedelta(minutes=settings.VERIFICATION_CODE_TTL_MINUTES):
        return CodeCheck.EXPIRED

    if hmac.compare_digest(stored.encode(), (supplied_code or "").encode()):
        return CodeCheck.MATCH
    return CodeCheck.MISMATCH


def verify_code(db: Session, submission_id: str, supplied_code: str) -> bool:
    """True when the supplied code matches the live code for the submission."""
    submission = submission_store.get_submission(db, submission_id)
    if not submission:
        return False
    return check_code(submission, supplied_code) == CodeCheck.MATCH


def record_failed_attempt(db: Session, submission: Submission) -> int:
    """
    Count a mismatch. Returns the count after this attempt.

    The increment runs in the database, so parallel guesses against the same
    code each count. Once the count reaches VERIFICATION_MAX_ATTEMPTS the code
    is burned until a new one is requested.
    """
    key = (
        Submission.client_identity == submission.client_identity,
        Submission.submission_id == submission.submission_id,
    )
    live_code = (
        Submission.status.in_([s.value for s in CODE_STATUSES]),
        Submission.verification_code.is_not(None),
    )
    db.execute(
        update(Submission)
        .where(*key, *live_code)
        .values(
            verification_attempts=Submission.verification_attempts + 1,
            updated_at=submission_store.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    attempts = db.execute(select(Submission.verification_attempts).where(*key)).scalar_one()
    if attempts >= settings.VERIFICATION_MAX_ATTEMPTS:
        db.execute(
            update(Submission)
            .where(*key, *live_code)
            .values(verification_code=None, version=Submission.version + 1)
            .execution_options(synchronize_session=False)
        )
    db.commit()
    return attempts
