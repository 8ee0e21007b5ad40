"""
Worker entry point.
Run with: python -m app.worker.runner
"""

from redis import Redis
from rq import Worker

from app.config import settings
from app.observability.logging import setup_logging
from app.worker.jobs import schedule_next_sla_sweep


def main():
    """Start the RQ worker for notification delivery and SLA sweeps."""
    setup_logging()

    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker(
        queues=[settings.QUEUE_NAME],
        connection=conn,
        name=f"lifecycle-worker-{settings.APP_VERSION}",
    )

    schedule_next_sla_sweep()

    print(f"Starting worker on queue '{settings.QUEUE_NAME}'...")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
