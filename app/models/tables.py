"""
SQLAlchemy ORM models for reports, workflow history, coordinator
assignments, duplicate relationships and completion details.
Types stay portable so the same mappings run on PostgreSQL and SQLite.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base

_STATUS_VALUES = "'submitted','under_review','approved','rejected','assigned','in_progress','completed','closed','reopened'"


# ────────────────────────────────────────────────────────────
# REPORTS
# ────────────────────────────────────────────────────────────
class Report(Base):
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    location_type: Mapped[str] = mapped_column(String(10), nullable=False)
    block_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    room_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    location_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    equipment_description: Mapped[str] = mapped_column(Text, nullable=False)
    problem_description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="submitted")
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parts_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    time_spent_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Last sla_violation notification, for the re-notify window
    sla_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    history = relationship(
        "WorkflowHistory", back_populates="report",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    completion_detail = relationship(
        "CompletionDetail", back_populates="report", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_reports_status"),
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_reports_rating"),
        Index("idx_reports_status", "status"),
        Index("idx_reports_created", "created_at"),
        Index("idx_reports_candidates", "block_id", "category", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# WORKFLOW HISTORY
# ────────────────────────────────────────────────────────────
class WorkflowHistory(Base):
    __tablename__ = "workflow_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Per-report append order; breaks ties between equal timestamps
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    report = relationship("Report", back_populates="history")

    __table_args__ = (
        UniqueConstraint("report_id", "seq", name="uq_history_report_seq"),
        Index("idx_history_report", "report_id", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# COORDINATOR ASSIGNMENTS
# ────────────────────────────────────────────────────────────
class CoordinatorAssignment(Base):
    __tablename__ = "coordinator_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    coordinator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # NULL block_id is a wildcard (general location) assignment
    block_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("coordinator_id", "block_id", name="uq_coordinator_block"),
        Index("idx_assignments_coordinator", "coordinator_id"),
    )


# ────────────────────────────────────────────────────────────
# DUPLICATE RELATIONSHIPS
# ────────────────────────────────────────────────────────────
class DuplicateReport(Base):
    __tablename__ = "duplicate_reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    )
    duplicate_report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    )
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("original_report_id", "duplicate_report_id", name="uq_duplicate_pair"),
    )


# ────────────────────────────────────────────────────────────
# COMPLETION DETAILS
# ────────────────────────────────────────────────────────────
class CompletionDetail(Base):
    __tablename__ = "completion_details"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    completed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    completion_notes: Mapped[str] = mapped_column(Text, nullable=False)
    parts_used: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    time_spent_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completion_photos: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    report = relationship("Report", back_populates="completion_detail")
