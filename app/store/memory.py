"""
In-process report store.
Backs local development without a database and the unit test suite.
A single asyncio lock serialises writes, which gives the same
compare-and-set semantics as the SQL store.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Iterable, Optional

from app.models.enums import ReportStatus
from app.schemas.duplicates import DuplicateRelationship
from app.schemas.reports import (
    CompletionDetailRecord,
    CoordinatorAssignmentRecord,
    HistoryEntry,
    ReportRecord,
)
from app.store.base import (
    ReportRef,
    ReportStore,
    StaleStateError,
    TicketIdTaken,
    parse_report_ref,
)


class InMemoryReportStore(ReportStore):

    def __init__(self):
        self._lock = asyncio.Lock()
        self.reports: dict[uuid.UUID, ReportRecord] = {}
        self.history: list[HistoryEntry] = []
        self.assignments: list[CoordinatorAssignmentRecord] = []
        self.duplicates: list[DuplicateRelationship] = []
        self.completion_details: dict[uuid.UUID, CompletionDetailRecord] = {}

    async def create_report(self, report: ReportRecord, history: HistoryEntry) -> ReportRecord:
        async with self._lock:
            if any(r.ticket_id == report.ticket_id for r in self.reports.values()):
                raise TicketIdTaken(report.ticket_id)
            self.reports[report.id] = report
            self.history.append(history.model_copy(update={"id": history.id or uuid.uuid4()}))
            return report

    async def get_report(self, ref: ReportRef) -> Optional[ReportRecord]:
        report_id, ticket_id = parse_report_ref(ref)
        if report_id is not None:
            return self.reports.get(report_id)
        return next((r for r in self.reports.values() if r.ticket_id == ticket_id), None)

    async def count_created_between(self, start: datetime, end: datetime) -> int:
        return sum(1 for r in self.reports.values() if start <= r.created_at < end)

    async def find_candidates(
        self,
        block_id: int,
        room_number: Optional[str],
        category: str,
        exclude_statuses: Iterable[ReportStatus],
        since: datetime,
        limit: int,
    ) -> list[ReportRecord]:
        excluded = set(exclude_statuses)
        matches = [
            r for r in self.reports.values()
            if r.block_id == block_id
            and (not room_number or r.room_number == room_number)
            and r.category == category
            and r.status not in excluded
            and r.created_at >= since
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return matches[:limit]

    async def update_in_transaction(
        self,
        report_id: uuid.UUID,
        expected_status: ReportStatus,
        fields: dict,
        history: HistoryEntry,
    ) -> ReportRecord:
        async with self._lock:
            current = self.reports.get(report_id)
            if current is None or current.status != expected_status:
                raise StaleStateError(report_id, expected_status)
            if "rating" in fields and current.rating is not None:
                raise StaleStateError(report_id, expected_status)
            # Validate the merged snapshot before touching state
            updated = ReportRecord.model_validate({**current.model_dump(), **fields})
            self.reports[report_id] = updated
            self.history.append(history.model_copy(update={"id": history.id or uuid.uuid4()}))
            return updated

    async def list_history(self, report_id: uuid.UUID) -> list[HistoryEntry]:
        entries = [h for h in self.history if h.report_id == report_id]
        # Stable on ties: later appends first
        return list(reversed(sorted(entries, key=lambda h: h.created_at)))

    async def list_assignments(self, coordinator_id: str) -> list[CoordinatorAssignmentRecord]:
        return [a for a in self.assignments if a.coordinator_id == coordinator_id]

    async def add_assignment(self, coordinator_id: str, block_id: Optional[int]) -> CoordinatorAssignmentRecord:
        record = CoordinatorAssignmentRecord(coordinator_id=coordinator_id, block_id=block_id)
        if record not in self.assignments:
            self.assignments.append(record)
        return record

    async def record_duplicate(
        self,
        original_report_id: uuid.UUID,
        duplicate_report_id: uuid.UUID,
        similarity_score: float,
        created_at: datetime,
    ) -> Optional[DuplicateRelationship]:
        async with self._lock:
            for d in self.duplicates:
                if (d.original_report_id, d.duplicate_report_id) == (original_report_id, duplicate_report_id):
                    return None
            rel = DuplicateRelationship(
                original_report_id=original_report_id,
                duplicate_report_id=duplicate_report_id,
                similarity_score=similarity_score,
                created_at=created_at,
            )
            self.duplicates.append(rel)
            return rel

    async def list_duplicates(self, report_id: uuid.UUID) -> list[DuplicateRelationship]:
        return [
            d for d in self.duplicates
            if report_id in (d.original_report_id, d.duplicate_report_id)
        ]

    async def create_completion_detail(self, detail: CompletionDetailRecord) -> CompletionDetailRecord:
        async with self._lock:
            self.completion_details[detail.report_id] = detail
            return detail

    async def get_completion_detail(self, report_id: uuid.UUID) -> Optional[CompletionDetailRecord]:
        return self.completion_details.get(report_id)

    async def list_sla_candidates(self, exclude_statuses: Iterable[ReportStatus]) -> list[ReportRecord]:
        excluded = set(exclude_statuses)
        return [
            r for r in self.reports.values()
            if r.priority is not None and r.status not in excluded
        ]

    async def mark_sla_notified(self, report_id: uuid.UUID, notified_at: datetime) -> None:
        async with self._lock:
            current = self.reports.get(report_id)
            if current is not None:
                self.reports[report_id] = current.model_copy(update={"sla_notified_at": notified_at})
