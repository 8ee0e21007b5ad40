"""
Workflow request/response schemas: transition payloads, ratings,
transition results and the available-transition listing.
"""

from typing import Optional

from pydantic import BaseModel

from app.models.enums import Priority, ReportStatus, WorkflowAction
from app.schemas.reports import ReportRecord


class TransitionPayload(BaseModel):
    """
    Data that may accompany a transition.
    Which fields are required depends on the target status; the state
    machine enforces that, not this schema.
    """
    priority: Optional[Priority] = None
    rejection_reason: Optional[str] = None
    assigned_to: Optional[str] = None
    completion_notes: Optional[str] = None
    parts_used: Optional[str] = None
    time_spent_minutes: Optional[int] = None
    completion_photos: list[str] = []
    notes: Optional[str] = None


class TransitionRequest(TransitionPayload):
    """API body for POST /reports/{ref}/transitions."""
    to_status: ReportStatus


class RatingRequest(BaseModel):
    """Closed-loop customer rating for a completed report."""
    rating: int
    comment: Optional[str] = None
    mark_still_broken: bool = False


class TransitionResult(BaseModel):
    report: ReportRecord
    from_status: ReportStatus
    to_status: ReportStatus
    action: WorkflowAction


class RatingResult(TransitionResult):
    rating: int


class RatingEligibility(BaseModel):
    can_rate: bool
    reason: Optional[str] = None
    ticket_id: Optional[str] = None


class AvailableTransition(BaseModel):
    to_status: ReportStatus
    action: WorkflowAction
    requires_data: list[str] = []
