"""Submission processing job handlers."""

from __future__ import annotations

import logging

from leadflow.schemas.events import SubmissionEvent
from leadflow.services import clients, processor_service

logger = logging.getLogger(__name__)


async def process_submission_completed(db, job) -> None:
    """Consume a queued submission.completed event."""
    payload = job.payload or {}
    if not payload.get("message_id") or not payload.get("submission_id"):
        raise Exception("Missing message_id or submission_id in job payload")

    event = SubmissionEvent.model_validate(payload)
    outcome = await processor_service.process_submission_event(db, event, clients.get_clients())
    logger.info(
        "Submission event job %s handled processed=%s status=%s",
        job.id,
        outcome.processed,
        outcome.status,
    )
