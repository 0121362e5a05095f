"""Dedup guard - first-writer-wins claims on queue messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.db.enums import DedupStatus
from leadflow.db.models import DedupClaim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    claimed: bool
    message_id: str
    reclaimed: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)


def claim(
    db: Session,
    message_id: str,
    content_digest: str,
    *,
    ttl_minutes: int | None = None,
    now: datetime | None = None,
) -> ClaimResult:
    """
    Atomically claim a message for processing.

    Inserts a PROCESSING claim keyed by message_id. If a claim already
    exists the insert fails on the primary key and the caller must not
    process; the one exception is an expired claim, which is taken over
    with a conditional update that only one writer can win.
    """
    now = now or _now()
    ttl = timedelta(minutes=ttl_minutes or settings.DEDUP_CLAIM_TTL_MINUTES)
    expires_at = now + ttl

    try:
        db.add(
            DedupClaim(
                message_id=message_id,
                status=DedupStatus.PROCESSING.value,
                content_digest=content_digest,
                claimed_at=now,
                expires_at=expires_at,
            )
        )
        db.commit()
        return ClaimResult(claimed=True, message_id=message_id)
    except IntegrityError:
        db.rollback()

    result = db.execute(
        update(DedupClaim)
        .where(DedupClaim.message_id == message_id, DedupClaim.expires_at < now)
        .values(
            status=DedupStatus.PROCESSING.value,
            content_digest=content_digest,
            claimed_at=now,
            expires_at=expires_at,
            completed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 1:
        logger.warning("Re-claimed expired dedup claim message_id=%s", message_id)
        return ClaimResult(claimed=True, message_id=message_id, reclaimed=True)

    logger.info("Duplicate delivery ignored message_id=%s", message_id)
    return ClaimResult(claimed=False, message_id=message_id)


def mark_processed(db: Session, message_id: str, *, now: datetime | None = None) -> bool:
    """Move a claim PROCESSING -> PROCESSED. Only one caller can succeed."""
    result = db.execute(
        update(DedupClaim)
        .where(
            DedupClaim.message_id == message_id,
            DedupClaim.status == DedupStatus.PROCESSING.value,
        )
        .values(status=DedupStatus.PROCESSED.value, completed_at=now or _now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release(db: Session, message_id: str) -> None:
    """Drop an unfinished claim so a redelivery can process the message."""
    db.execute(
        delete(DedupClaim)
        .where(
            DedupClaim.message_id == message_id,
            DedupClaim.status == DedupStatus.PROCESSING.value,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()


def get_claim(db: Session, message_id: str) -> DedupClaim | None:
    return db.get(DedupClaim, message_id)


def purge_expired_claims(db: Session, *, now: datetime | None = None) -> int:
    """Delete claims past their expiry. Returns the number removed."""
    result = db.execute(
        delete(DedupClaim)
        .where(DedupClaim.expires_at < (now or _now()))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0
