"""
Python enums matching the database enum types.
Names and values MUST match the DB DDL exactly.
"""

from enum import Enum
from typing import Optional


class ReportStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    REOPENED = "reopened"


class Category(str, Enum):
    ELECTRICAL = "electrical"
    MECHANICAL = "mechanical"


class Priority(str, Enum):
    EMERGENCY = "emergency"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LocationType(str, Enum):
    SPECIFIC = "specific"
    GENERAL = "general"


class Role(str, Enum):
    REPORTER = "reporter"
    COORDINATOR = "coordinator"
    ELECTRICAL_FIXER = "electrical_fixer"
    MECHANICAL_FIXER = "mechanical_fixer"
    ADMIN = "admin"

    @property
    def is_fixer(self) -> bool:
        return self in (Role.ELECTRICAL_FIXER, Role.MECHANICAL_FIXER)

    @property
    def specialty(self) -> Optional[Category]:
        """Report category a fixer role may work on."""
        if self is Role.ELECTRICAL_FIXER:
            return Category.ELECTRICAL
        if self is Role.MECHANICAL_FIXER:
            return Category.MECHANICAL
        return None


class WorkflowAction(str, Enum):
    SUBMIT = "submit"
    REVIEW = "review"
    REJECT = "reject"
    APPROVE = "approve"
    ASSIGN = "assign"
    APPROVE_AND_ASSIGN = "approve_and_assign"
    REOPEN = "reopen"
    START_WORK = "start_work"
    COMPLETE = "complete"
    CLOSE = "close"
    REVIEW_RATING = "review_rating"
    REASSIGN = "reassign"
    RATE = "rate"


class NotificationType(str, Enum):
    CREATED = "created"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    REOPENED = "reopened"
    SLA_VIOLATION = "sla_violation"


# Statuses that are no longer candidates for duplicate matching
INACTIVE_STATUSES = (ReportStatus.COMPLETED, ReportStatus.CLOSED, ReportStatus.REJECTED)
