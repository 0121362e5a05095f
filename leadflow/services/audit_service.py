"""Audit logging service - security event tracking.

Security guidelines:
- NEVER log secrets (CAPTCHA tokens, internal secrets, codes)
- Identities are stored as digests only
- IP: Trust X-Forwarded-For only in production behind LB
"""

import logging
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from leadflow.core.config import settings
from leadflow.db.enums import SecurityEventType
from leadflow.db.models import SecurityEvent

logger = logging.getLogger(__name__)


def get_client_ip(request: Request | None) -> str | None:
    """
    Extract client IP from request.

    Only trusts X-Forwarded-For when TRUST_PROXY_HEADERS=True (behind reverse proxy).
    In development/direct connections, uses request.client.host.
    """
    if not request:
        return None

    # Only trust X-Forwarded-For when explicitly configured (behind nginx/Cloudflare)
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For: client, proxy1, proxy2 - take first
            return forwarded.split(",")[0].strip()

    # Direct connection or TRUST_PROXY_HEADERS=False
    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request | None) -> str | None:
    """Extract user agent from request."""
    if not request:
        return None
    ua = request.headers.get("user-agent", "")
    # Truncate to 500 chars (DB limit)
    return ua[:500] if ua else None


def log_security_event(
    db: Session,
    event_type: SecurityEventType,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    client_identity: str | None = None,
    form_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> SecurityEvent | None:
    """
    Persist a security audit row in its own commit.

    Audit failures are logged and swallowed so they never mask the
    SecurityError being reported to the caller.
    """
    entry = SecurityEvent(
        event_type=event_type.value,
        ip_address=ip_address,
        user_agent=user_agent,
        client_identity=client_identity,
        form_name=form_name,
        details=details,
    )
    try:
        db.add(entry)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write security event %s", event_type.value)
        return None
    logger.warning(
        "Security event %s ip=%s form=%s",
        event_type.value,
        ip_address,
        form_name,
    )
    return entry
