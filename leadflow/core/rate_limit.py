"""Per-IP request throttling for the public signup endpoints."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from leadflow.core.config import settings

# Redis-backed storage for multi-worker deployments
# Falls back to in-memory if Redis is not available (dev/test mode)
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

if IS_TESTING:
    # Throttling disabled in tests (no Redis dependency, no cross-test bleed)
    limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
        enabled=False,
    )
else:
    # Try Redis, fall back to memory if connection fails
    try:
        import redis

        # Test connection upfront
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        r.ping()
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri=settings.REDIS_URL,
        )
    except Exception as e:
        logging.warning(f"Redis unavailable for rate limiting, using in-memory: {e}")
        limiter = Limiter(
            key_func=get_remote_address,
            storage_uri="memory://",
        )
