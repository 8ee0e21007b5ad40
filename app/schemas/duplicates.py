"""
Duplicate detection result shapes.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.enums import Priority, ReportStatus
from app.schemas.reports import ReportRecord


class DuplicateMatch(BaseModel):
    """An existing open report scored against the incoming one."""
    report_id: uuid.UUID
    ticket_id: str
    equipment_description: str
    problem_description: str
    status: ReportStatus
    priority: Optional[Priority] = None
    submitted_by: str
    created_at: datetime
    block_id: Optional[int] = None
    room_number: Optional[str] = None
    similarity_score: float
    equipment_similarity: float
    problem_similarity: float
    high_confidence: bool = False


class DuplicateCheckResult(BaseModel):
    """
    Outcome of a duplicate check.

    has_duplicates is True only for high-confidence matches; in that case
    duplicates holds those matches and warning_message is set. Otherwise
    duplicates may carry low-confidence matches for display only.
    """
    has_duplicates: bool = False
    duplicates: list[DuplicateMatch] = []
    warning_message: Optional[str] = None
    allow_anyway: bool = False
    detector_available: bool = True
    error: Optional[str] = None

    @property
    def high_confidence(self) -> list[DuplicateMatch]:
        return [d for d in self.duplicates if d.high_confidence]


class DuplicateRelationship(BaseModel):
    original_report_id: uuid.UUID
    duplicate_report_id: uuid.UUID
    similarity_score: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CreateReportResult(BaseModel):
    """Result of create-with-duplicate-check."""
    success: bool
    report: Optional[ReportRecord] = None
    duplicate_warning: bool = False
    duplicate_result: Optional[DuplicateCheckResult] = None
    message: Optional[str] = None
