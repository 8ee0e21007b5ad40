"""
SLA monitor: priority -> maximum hours from creation to resolution.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from app.config import LifecycleConfig
from app.models.enums import Priority, ReportStatus
from app.schemas.reports import ReportRecord

# The SLA runs from creation to resolution
SLA_EXEMPT_STATUSES = (ReportStatus.COMPLETED, ReportStatus.CLOSED, ReportStatus.REJECTED)


class SlaCheck(BaseModel):
    report_id: str
    ticket_id: str
    priority: Optional[Priority] = None
    sla_hours: Optional[float] = None
    hours_elapsed: float = 0.0
    deadline: Optional[datetime] = None
    violated: bool = False
    notified: bool = False

    @property
    def violation_hours(self) -> int:
        if not self.violated or self.sla_hours is None:
            return 0
        return round(self.hours_elapsed - self.sla_hours)


class SlaMonitor:

    def __init__(self, config: LifecycleConfig):
        self.config = config

    def sla_hours(self, priority: Priority) -> float:
        return float(self.config.sla_hours[Priority(priority).value])

    def deadline(self, report: ReportRecord) -> Optional[datetime]:
        if report.priority is None:
            return None
        return report.created_at + timedelta(hours=self.sla_hours(report.priority))

    def recently_notified(self, report: ReportRecord, now: datetime) -> bool:
        if report.sla_notified_at is None:
            return False
        return now - report.sla_notified_at < timedelta(hours=self.config.sla_renotify_hours)

    def check(self, report: ReportRecord, now: datetime) -> SlaCheck:
        """
        Flag a report whose elapsed time since creation exceeds its
        priority's SLA. Unprioritised and resolved reports never violate.
        """
        hours_elapsed = (now - report.created_at).total_seconds() / 3600
        result = SlaCheck(
            report_id=str(report.id),
            ticket_id=report.ticket_id,
            priority=report.priority,
            hours_elapsed=round(hours_elapsed, 2),
        )
        if report.priority is None or report.status in SLA_EXEMPT_STATUSES:
            return result

        sla_hours = self.sla_hours(report.priority)
        return result.model_copy(update={
            "sla_hours": sla_hours,
            "deadline": self.deadline(report),
            "violated": hours_elapsed > sla_hours,
        })
