"""
RQ job functions for notification delivery and the SLA sweep.
These are the entry points that the worker calls.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from redis import Redis
from rq import Queue

from app.config import settings

logger = structlog.get_logger(__name__)


def get_queue() -> Queue:
    """Get the notification job queue."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.QUEUE_NAME, connection=conn)


def deliver_notification_job(event: dict) -> dict:
    """
    Deliver one notification event.
    Channel fan-out (email, push, in-app rows) plugs in here.
    """
    report = event.get("report", {})
    logger.info(
        "notification_delivered",
        event_type=event.get("type"),
        ticket_id=report.get("ticket_id"),
        submitted_by=report.get("submitted_by"),
        assigned_to=report.get("assigned_to"),
    )
    return {"delivered": True, "type": event.get("type")}


def sla_sweep_slot(now: datetime) -> datetime:
    """Start of the next SLA_SWEEP_INTERVAL_MINUTES boundary after now."""
    interval = settings.SLA_SWEEP_INTERVAL_MINUTES * 60
    start = (int(now.timestamp()) // interval + 1) * interval
    return datetime.fromtimestamp(start, tz=timezone.utc)


def sla_sweep_job_id(run_at: datetime) -> str:
    return f"sla-sweep-{run_at:%Y%m%d%H%M}"


def schedule_next_sla_sweep(queue: Optional[Queue] = None, now: Optional[datetime] = None) -> Optional[str]:
    """
    Schedule the sweep for the next interval boundary. The job ID is
    derived from the boundary, so workers and restarts that schedule the
    same slot share one job. Returns None when the slot is already taken.
    """
    q = queue or get_queue()
    run_at = sla_sweep_slot(now or datetime.now(timezone.utc))
    job_id = sla_sweep_job_id(run_at)
    if q.fetch_job(job_id) is not None:
        logger.info("sla_sweep_already_scheduled", job_id=job_id)
        return None

    job = q.enqueue_at(
        run_at,
        sla_sweep_job,
        job_id=job_id,
        job_timeout=settings.JOB_TIMEOUT_SECONDS * 5,
    )
    logger.info("sla_sweep_scheduled", job_id=job.id, run_at=run_at.isoformat())
    return job.id


def sla_sweep_job() -> dict:
    """
    Flag every open, prioritised report that is past its SLA.
    This runs inside the RQ worker process and schedules the next slot.
    """
    import asyncio

    logger.info("sla_sweep_started")
    try:
        violations = asyncio.run(_sla_sweep_async())
        logger.info("sla_sweep_completed", violations=violations)
        return {"violations": violations}
    except Exception as e:
        logger.error("sla_sweep_failed", error=str(e))
        raise
    finally:
        schedule_next_sla_sweep()


async def _sla_sweep_async() -> int:
    from app.dependencies import build_lifecycle
    from app.models.database import close_db

    try:
        lifecycle = build_lifecycle()
        checks = await lifecycle.sla_sweep()
        return len(checks)
    finally:
        await close_db()
