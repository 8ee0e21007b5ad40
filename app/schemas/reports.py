"""
Report intake and report snapshot schemas.
ReportRecord is the immutable view every lifecycle component works on;
only the store turns it back into rows.
"""

import uuid
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.clock import ensure_utc
from app.models.enums import Category, LocationType, Priority, ReportStatus, Role, WorkflowAction


# ── Identity ─────────────────────────────────────────────────

class Identity(BaseModel):
    """Caller identity supplied by the (external) auth layer."""
    id: str
    role: Role

    model_config = {"frozen": True}


# ── Location ─────────────────────────────────────────────────

class SpecificLocation(BaseModel):
    type: Literal["specific"] = "specific"
    block_id: int = Field(ge=1, le=100)
    room_number: Optional[str] = Field(default=None, max_length=20)


class GeneralLocation(BaseModel):
    type: Literal["general"] = "general"
    description: str = Field(min_length=1, max_length=500)


Location = Annotated[Union[SpecificLocation, GeneralLocation], Field(discriminator="type")]


# ── Intake ───────────────────────────────────────────────────

class ReportCreate(BaseModel):
    """Payload for a new report."""
    category: Category
    location: Location
    equipment_description: str = Field(min_length=1, max_length=500)
    problem_description: str = Field(min_length=10, max_length=500)


# ── Snapshots ────────────────────────────────────────────────

class ReportRecord(BaseModel):
    """Point-in-time snapshot of a report."""
    id: uuid.UUID
    ticket_id: str
    category: Category
    location_type: LocationType
    block_id: Optional[int] = None
    room_number: Optional[str] = None
    location_description: Optional[str] = None
    equipment_description: str
    problem_description: str
    status: ReportStatus
    priority: Optional[Priority] = None
    submitted_by: str
    assigned_to: Optional[str] = None
    rejection_reason: Optional[str] = None
    completion_notes: Optional[str] = None
    parts_used: Optional[str] = None
    time_spent_minutes: Optional[int] = None
    completed_at: Optional[datetime] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    sla_notified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("created_at", "updated_at", "completed_at", "sla_notified_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def is_general_location(self) -> bool:
        return self.location_type == LocationType.GENERAL or self.block_id is None


class HistoryEntry(BaseModel):
    """One executed transition. Append-only."""
    id: Optional[uuid.UUID] = None
    report_id: uuid.UUID
    actor_id: str
    from_status: Optional[ReportStatus] = None
    to_status: ReportStatus
    action: WorkflowAction
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class CoordinatorAssignmentRecord(BaseModel):
    coordinator_id: str
    block_id: Optional[int] = None  # None = wildcard

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def is_wildcard(self) -> bool:
        return self.block_id is None


class CompletionDetailRecord(BaseModel):
    report_id: uuid.UUID
    completed_by: str
    completion_notes: str
    parts_used: Optional[str] = None
    time_spent_minutes: Optional[int] = None
    completion_photos: list[str] = []
    created_at: datetime

    model_config = {"from_attributes": True}
