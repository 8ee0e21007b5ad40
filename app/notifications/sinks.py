"""
Notification sinks.
The lifecycle only publishes events; delivery (email, push, in-app) lives
behind the sink. Publishing is fire-and-forget from the caller's side.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from app.config import Settings, settings
from app.schemas.notifications import NotificationEvent

logger = structlog.get_logger(__name__)


class NotificationSink(ABC):

    @abstractmethod
    async def publish(self, event: NotificationEvent) -> None:
        """Hand an event over for delivery. May raise; callers log and move on."""
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes events to the structured log. Default for local runs."""

    async def publish(self, event: NotificationEvent) -> None:
        logger.info(
            "notification_event",
            event_type=event.type.value,
            report_id=str(event.report.id),
            ticket_id=event.report.ticket_id,
            status=event.report.status.value,
            extra=event.extra,
        )


class QueueNotificationSink(NotificationSink):
    """Enqueues events on the RQ notification queue for the worker to deliver."""

    def __init__(self, queue=None):
        self._queue = queue

    @property
    def queue(self):
        if self._queue is None:
            from app.worker.jobs import get_queue
            self._queue = get_queue()
        return self._queue

    async def publish(self, event: NotificationEvent) -> None:
        from app.worker.jobs import deliver_notification_job

        payload = event.model_dump(mode="json")
        job = await asyncio.to_thread(
            self.queue.enqueue,
            deliver_notification_job,
            payload,
            job_timeout=settings.JOB_TIMEOUT_SECONDS,
            result_ttl=3600,
            failure_ttl=604800,  # Keep failures for 7 days
        )
        logger.debug("notification_enqueued", event_type=event.type.value, job_id=job.id)


def build_sink(config: Optional[Settings] = None) -> NotificationSink:
    config = config or settings
    if config.NOTIFICATION_SINK == "queue":
        return QueueNotificationSink()
    return LoggingNotificationSink()
