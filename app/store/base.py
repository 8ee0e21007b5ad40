"""
Abstract base class for report stores.
Every store must keep status updates and history appends atomic.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional, Union

from app.models.enums import ReportStatus
from app.schemas.duplicates import DuplicateRelationship
from app.schemas.reports import (
    CompletionDetailRecord,
    CoordinatorAssignmentRecord,
    HistoryEntry,
    ReportRecord,
)

ReportRef = Union[str, uuid.UUID]


class StoreError(Exception):
    """Raised by stores for conditions the lifecycle layer must react to."""


class TicketIdTaken(StoreError):
    """Insert lost the race for a ticket ID (unique constraint)."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket ID already taken: {ticket_id}")


class StaleStateError(StoreError):
    """Compare-and-set update found the report no longer in the expected state."""

    def __init__(self, report_id: uuid.UUID, expected_status: ReportStatus):
        self.report_id = report_id
        self.expected_status = expected_status
        super().__init__(
            f"Report {report_id} is no longer in status {expected_status.value}"
        )


def parse_report_ref(ref: ReportRef) -> tuple[Optional[uuid.UUID], Optional[str]]:
    """Split a reference into (report_id, ticket_id); exactly one is set."""
    if isinstance(ref, uuid.UUID):
        return ref, None
    try:
        return uuid.UUID(str(ref)), None
    except ValueError:
        return None, str(ref)


def column_value(value):
    """Enum members are stored by value."""
    return getattr(value, "value", value)


class ReportStore(ABC):
    """
    Persistence contract consumed by the lifecycle coordinator.

    Implementations must:
    1. Persist a new report together with its first history entry
    2. Raise TicketIdTaken when a ticket ID is already used
    3. Apply transition updates as compare-and-set on the source status,
       appending the history entry in the same unit of work
    4. Raise StaleStateError (and change nothing) when the CAS fails
    """

    @abstractmethod
    async def create_report(self, report: ReportRecord, history: HistoryEntry) -> ReportRecord:
        ...

    @abstractmethod
    async def get_report(self, ref: ReportRef) -> Optional[ReportRecord]:
        """Look up by report UUID or by ticket ID."""
        ...

    @abstractmethod
    async def count_created_between(self, start: datetime, end: datetime) -> int:
        ...

    @abstractmethod
    async def find_candidates(
        self,
        block_id: int,
        room_number: Optional[str],
        category: str,
        exclude_statuses: Iterable[ReportStatus],
        since: datetime,
        limit: int,
    ) -> list[ReportRecord]:
        """Open reports at a location, newest first."""
        ...

    @abstractmethod
    async def update_in_transaction(
        self,
        report_id: uuid.UUID,
        expected_status: ReportStatus,
        fields: dict,
        history: HistoryEntry,
    ) -> ReportRecord:
        """
        Atomically apply fields and append history if the report is still
        in expected_status. When fields include a rating, the report must
        also still be unrated.
        """
        ...

    @abstractmethod
    async def list_history(self, report_id: uuid.UUID) -> list[HistoryEntry]:
        """History entries, newest first."""
        ...

    @abstractmethod
    async def list_assignments(self, coordinator_id: str) -> list[CoordinatorAssignmentRecord]:
        ...

    @abstractmethod
    async def add_assignment(self, coordinator_id: str, block_id: Optional[int]) -> CoordinatorAssignmentRecord:
        ...

    @abstractmethod
    async def record_duplicate(
        self,
        original_report_id: uuid.UUID,
        duplicate_report_id: uuid.UUID,
        similarity_score: float,
        created_at: datetime,
    ) -> Optional[DuplicateRelationship]:
        """Returns None when the pair was already recorded."""
        ...

    @abstractmethod
    async def list_duplicates(self, report_id: uuid.UUID) -> list[DuplicateRelationship]:
        """Relationships where the report is on either side."""
        ...

    @abstractmethod
    async def create_completion_detail(self, detail: CompletionDetailRecord) -> CompletionDetailRecord:
        ...

    @abstractmethod
    async def get_completion_detail(self, report_id: uuid.UUID) -> Optional[CompletionDetailRecord]:
        ...

    @abstractmethod
    async def list_sla_candidates(self, exclude_statuses: Iterable[ReportStatus]) -> list[ReportRecord]:
        """Prioritised reports whose status is not excluded."""
        ...

    @abstractmethod
    async def mark_sla_notified(self, report_id: uuid.UUID, notified_at: datetime) -> None:
        """Record when an sla_violation was last sent. Not a transition: no history."""
        ...
