"""
Notification events handed to the external sink.
"""

from datetime import datetime

from pydantic import BaseModel

from app.models.enums import NotificationType
from app.schemas.reports import ReportRecord


class NotificationEvent(BaseModel):
    type: NotificationType
    report: ReportRecord
    extra: dict = {}
    occurred_at: datetime
