"""Request trust checks: caller origin and the internal shared secret."""

from __future__ import annotations

import secrets
from typing import Optional
from urllib.parse import urlsplit

from fastapi import Request

from leadflow.core.config import settings

INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def request_origin(request: Request) -> Optional[str]:
    """Origin header, else scheme://host of the Referer. Lowercase, no trailing slash."""
    origin = request.headers.get("origin")
    if origin and origin.lower() != "null":
        return origin.strip().rstrip("/").lower()
    referer = request.headers.get("referer")
    if referer:
        parts = urlsplit(referer)
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}".lower()
    return None


def is_trusted_origin(origin: Optional[str]) -> bool:
    """
    True when the origin is in TRUSTED_ORIGINS.

    With no trusted origins configured, dev accepts any caller and every
    other environment rejects all of them.
    """
    trusted = settings.trusted_origins_list
    if not trusted:
        return settings.ENV == "dev"
    return origin is not None and origin in trusted


def verify_internal_secret(provided: Optional[str]) -> bool:
    """Constant-time check of the X-Internal-Secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided, expected)
