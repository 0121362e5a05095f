"""Signup rate limiting over historical completed submissions.

The rate-limit window is a derived view, not a stored entity: every
submission sharing the identity digest, for the same form, whose
completed_at falls inside the trailing window, excluding the submission
currently being evaluated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.core.structured_logging import mask_digest
from leadflow.db.enums import ContactType, RateLimitDimension
from leadflow.db.models import Submission
from leadflow.services import policy_service

logger = logging.getLogger(__name__)


def _window_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=settings.RATE_LIMIT_WINDOW_DAYS)


def has_recent_submission(
    db: Session,
    *,
    dimension: RateLimitDimension,
    identity: str,
    form_name: str,
    exclude_submission_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """True when a completed submission exists inside the trailing window."""
    if dimension == RateLimitDimension.EMAIL:
        column = Submission.client_identity
    elif dimension == RateLimitDimension.PHONE:
        column = Submission.phone_hash
    else:
        raise ValueError("Window lookups are per contact dimension")

    query = select(Submission.submission_id).where(
        column == identity,
        Submission.form_name == form_name,
        Submission.completed_at.is_not(None),
        Submission.completed_at >= _window_start(now),
    )
    if exclude_submission_id:
        query = query.where(Submission.submission_id != exclude_submission_id)
    return db.execute(query.limit(1)).first() is not None


def _validate_single(
    db: Session,
    dimension: RateLimitDimension,
    identity: str | None,
    form_name: str,
    exclude_submission_id: str | None,
    now: datetime | None,
) -> bool:
    if not identity:
        return True
    contact_type = ContactType.EMAIL if dimension == RateLimitDimension.EMAIL else ContactType.PHONE
    if policy_service.is_allow_listed(db, contact_type, identity):
        return True
    allowed = not has_recent_submission(
        db,
        dimension=dimension,
        identity=identity,
        form_name=form_name,
        exclude_submission_id=exclude_submission_id,
        now=now,
    )
    if not allowed:
        logger.info(
            "Rate limit denial dimension=%s identity=%s form=%s",
            dimension.value,
            mask_digest(identity),
            form_name,
        )
    return allowed


def validate(
    db: Session,
    dimension: RateLimitDimension,
    *,
    form_name: str,
    email_identity: str | None = None,
    phone_identity: str | None = None,
    exclude_submission_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Return whether a new signup is allowed along a dimension.

    EMAIL checks email_identity, PHONE checks phone_identity, COMBINED
    requires both checks to pass independently. An allow-listed contact
    always passes its own check.
    """
    if dimension == RateLimitDimension.COMBINED:
        return _validate_single(
            db, RateLimitDimension.EMAIL, email_identity, form_name, exclude_submission_id, now
        ) and _validate_single(
            db, RateLimitDimension.PHONE, phone_identity, form_name, exclude_submission_id, now
        )
    identity = email_identity if dimension == RateLimitDimension.EMAIL else phone_identity
    return _validate_single(db, dimension, identity, form_name, exclude_submission_id, now)
