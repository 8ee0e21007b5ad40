"""
Tests for notification sinks and worker jobs.
"""

from datetime import datetime, timezone

from app.config import Settings
from app.models.enums import NotificationType
from app.notifications.sinks import (
    LoggingNotificationSink,
    QueueNotificationSink,
    build_sink,
)
from app.schemas.notifications import NotificationEvent
from app.worker.jobs import (
    deliver_notification_job,
    schedule_next_sla_sweep,
    sla_sweep_job,
    sla_sweep_slot,
)


class FakeJob:
    def __init__(self, job_id):
        self.id = job_id


class FakeQueue:
    """Records enqueue calls instead of talking to Redis."""

    def __init__(self):
        self.enqueued = []
        self.scheduled = []
        self.jobs = {}

    def enqueue(self, func, *args, **kwargs):
        self.enqueued.append((func, args, kwargs))
        return FakeJob(f"job-{len(self.enqueued)}")

    def enqueue_at(self, run_at, func, *args, job_id=None, **kwargs):
        self.scheduled.append((run_at, func, kwargs))
        job = FakeJob(job_id or f"scheduled-{len(self.scheduled)}")
        self.jobs[job.id] = job
        return job

    def fetch_job(self, job_id):
        return self.jobs.get(job_id)


def _event(report, event_type=NotificationType.ASSIGNED, **extra):
    return NotificationEvent(type=event_type, report=report, extra=extra, occurred_at=report.updated_at)


class TestSinks:

    def test_build_sink(self):
        assert isinstance(build_sink(Settings(NOTIFICATION_SINK="log")), LoggingNotificationSink)
        assert isinstance(build_sink(Settings(NOTIFICATION_SINK="queue")), QueueNotificationSink)

    async def test_logging_sink_accepts_event(self, make_report):
        await LoggingNotificationSink().publish(_event(make_report(), assigned_to="fixer-e1"))

    async def test_queue_sink_enqueues_serialised_event(self, make_report):
        queue = FakeQueue()
        report = make_report(assigned_to="fixer-e1")
        await QueueNotificationSink(queue).publish(_event(report, assigned_to="fixer-e1"))

        func, args, kwargs = queue.enqueued[0]
        assert func is deliver_notification_job
        payload = args[0]
        assert payload["type"] == "assigned"
        assert payload["report"]["ticket_id"] == report.ticket_id
        assert payload["report"]["id"] == str(report.id)
        assert payload["extra"] == {"assigned_to": "fixer-e1"}


class TestJobs:

    def test_deliver_notification(self, make_report):
        report = make_report()
        payload = _event(report, NotificationType.CREATED).model_dump(mode="json")
        assert deliver_notification_job(payload) == {"delivered": True, "type": "created"}

    def test_sweep_slot_is_next_boundary(self):
        assert sla_sweep_slot(datetime(2025, 1, 15, 10, 7, tzinfo=timezone.utc)) == \
            datetime(2025, 1, 15, 10, 15, tzinfo=timezone.utc)
        assert sla_sweep_slot(datetime(2025, 1, 15, 10, 15, tzinfo=timezone.utc)) == \
            datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_schedule_next_sweep(self):
        queue = FakeQueue()
        job_id = schedule_next_sla_sweep(queue, now=datetime(2025, 1, 15, 10, 7, tzinfo=timezone.utc))
        run_at, func, _ = queue.scheduled[0]
        assert job_id == "sla-sweep-202501151015"
        assert func is sla_sweep_job
        assert run_at == datetime(2025, 1, 15, 10, 15, tzinfo=timezone.utc)

    def test_restarts_share_one_sweep(self):
        # Two worker starts in the same interval schedule the same slot once
        queue = FakeQueue()
        first = schedule_next_sla_sweep(queue, now=datetime(2025, 1, 15, 10, 7, tzinfo=timezone.utc))
        second = schedule_next_sla_sweep(queue, now=datetime(2025, 1, 15, 10, 12, tzinfo=timezone.utc))
        assert first == "sla-sweep-202501151015"
        assert second is None
        assert len(queue.scheduled) == 1

        following = schedule_next_sla_sweep(queue, now=datetime(2025, 1, 15, 10, 15, 2, tzinfo=timezone.utc))
        assert following == "sla-sweep-202501151030"
