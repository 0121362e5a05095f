"""
Background worker for processing queued jobs.

Usage:
    python -m leadflow.worker

The worker polls for pending jobs and processes them, and schedules the
periodic maintenance sweeps (expired dedup claims, stranded dispatches).
Run it as a separate process next to the API.
"""

import asyncio
import logging
from datetime import datetime, timezone

from leadflow.core.config import settings
from leadflow.core.structured_logging import build_log_context
from leadflow.db.enums import JobType
from leadflow.db.session import SessionLocal
from leadflow.jobs.registry import resolve_job_handler
from leadflow.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE

# Sweep cadence in minutes; the idempotency key buckets runs per window
SWEEPS = {
    JobType.DEDUP_CLAIM_PURGE: 60,
    JobType.STRANDED_DISPATCH_SWEEP: 5,
}


def schedule_sweeps(db, now: datetime | None = None) -> list[str]:
    """Enqueue each maintenance sweep at most once per cadence window."""
    now = now or datetime.now(timezone.utc)
    scheduled: list[str] = []
    minute_of_day = now.hour * 60 + now.minute
    for job_type, every_minutes in SWEEPS.items():
        bucket = minute_of_day // every_minutes
        key = f"{job_type.value}:{now:%Y%m%d}:{bucket}"
        _, created = job_service.schedule_job_once(db, job_type, {}, idempotency_key=key)
        if created:
            scheduled.append(key)
    return scheduled


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info("Processing job %s (type=%s, attempt=%s)", job.id, job.job_type, job.attempts)
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_once(db) -> int:
    """Process one batch of due jobs. Returns how many were picked up."""
    jobs = job_service.get_pending_jobs(db, limit=BATCH_SIZE)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}")
            logger.error("Job %s failed: %s", job.id, type(e).__name__)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        POLL_INTERVAL_SECONDS,
        BATCH_SIZE,
    )

    while True:
        with SessionLocal() as db:
            try:
                schedule_sweeps(db)
                await run_once(db)
            except Exception as e:
                db.rollback()
                logger.error("Error in worker loop: %s", type(e).__name__)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception("Worker crashed", extra=build_log_context(route="worker", method="background"))
        raise


if __name__ == "__main__":
    main()
