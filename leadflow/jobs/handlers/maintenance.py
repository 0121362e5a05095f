"""Periodic maintenance job handlers."""

from __future__ import annotations

import logging

from leadflow.services import dedup_service, dispatch_service

logger = logging.getLogger(__name__)


async def process_dedup_claim_purge(db, job) -> None:
    removed = dedup_service.purge_expired_claims(db)
    logger.info("Purged %s expired dedup claims", removed)


async def process_stranded_dispatch_sweep(db, job) -> None:
    limit = int((job.payload or {}).get("limit", 100))
    dispatch_service.redispatch_stranded(db, limit=limit)
    dispatch_service.requeue_stalled(db, limit=limit)
