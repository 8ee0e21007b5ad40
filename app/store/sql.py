"""
SQLAlchemy-backed report store.
PostgreSQL (asyncpg) in production; any async dialect works.
"""

import uuid
from datetime import datetime
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.enums import ReportStatus
from app.models.tables import (
    CompletionDetail,
    CoordinatorAssignment,
    DuplicateReport,
    Report,
    WorkflowHistory,
)
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
    column_value,
    parse_report_ref,
)

logger = structlog.get_logger(__name__)


def _history_row(entry: HistoryEntry, seq: int) -> WorkflowHistory:
    return WorkflowHistory(
        id=entry.id or uuid.uuid4(),
        report_id=entry.report_id,
        actor_id=entry.actor_id,
        from_status=column_value(entry.from_status),
        to_status=column_value(entry.to_status),
        action=column_value(entry.action),
        notes=entry.notes,
        created_at=entry.created_at,
        seq=seq,
    )


class SqlReportStore(ReportStore):
    """
    Each call runs in its own session. Transition updates are a single
    UPDATE ... WHERE id = :id AND status = :expected plus the history
    INSERT inside one transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_report(self, report: ReportRecord, history: HistoryEntry) -> ReportRecord:
        row = Report(**{k: column_value(v) for k, v in report.model_dump().items()})
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    session.add(_history_row(history, seq=1))
            except IntegrityError as e:
                if "ticket_id" in str(e.orig):
                    raise TicketIdTaken(report.ticket_id) from e
                raise
        logger.debug("report_row_inserted", report_id=str(report.id), ticket_id=report.ticket_id)
        return report

    async def get_report(self, ref: ReportRef) -> Optional[ReportRecord]:
        report_id, ticket_id = parse_report_ref(ref)
        query = select(Report)
        if report_id is not None:
            query = query.where(Report.id == report_id)
        else:
            query = query.where(Report.ticket_id == ticket_id)
        async with self._session_factory() as session:
            row = (await session.execute(query)).scalar_one_or_none()
            return ReportRecord.model_validate(row) if row else None

    async def count_created_between(self, start: datetime, end: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(Report.id)).where(
                    Report.created_at >= start,
                    Report.created_at < end,
                )
            )
            return result.scalar() or 0

    async def find_candidates(
        self,
        block_id: int,
        room_number: Optional[str],
        category: str,
        exclude_statuses: Iterable[ReportStatus],
        since: datetime,
        limit: int,
    ) -> list[ReportRecord]:
        query = select(Report).where(
            Report.block_id == block_id,
            Report.category == column_value(category),
            Report.status.not_in([column_value(s) for s in exclude_statuses]),
            Report.created_at >= since,
        )
        if room_number:
            query = query.where(Report.room_number == room_number)
        query = query.order_by(Report.created_at.desc()).limit(limit)

        async with self._session_factory() as session:
            rows = (await session.execute(query)).scalars().all()
            return [ReportRecord.model_validate(r) for r in rows]

    async def update_in_transaction(
        self,
        report_id: uuid.UUID,
        expected_status: ReportStatus,
        fields: dict,
        history: HistoryEntry,
    ) -> ReportRecord:
        values = {k: column_value(v) for k, v in fields.items()}
        conditions = [Report.id == report_id, Report.status == expected_status.value]
        if "rating" in fields:
            conditions.append(Report.rating.is_(None))

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Report)
                    .where(*conditions)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise StaleStateError(report_id, expected_status)
                # The CAS row lock serialises appends for this report
                last_seq = (await session.execute(
                    select(func.coalesce(func.max(WorkflowHistory.seq), 0))
                    .where(WorkflowHistory.report_id == report_id)
                )).scalar_one()
                session.add(_history_row(history, seq=last_seq + 1))

            row = await session.get(Report, report_id, populate_existing=True)
            return ReportRecord.model_validate(row)

    async def list_history(self, report_id: uuid.UUID) -> list[HistoryEntry]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(WorkflowHistory)
                .where(WorkflowHistory.report_id == report_id)
                .order_by(WorkflowHistory.created_at.desc(), WorkflowHistory.seq.desc())
            )).scalars().all()
            return [HistoryEntry.model_validate(r) for r in rows]

    async def list_assignments(self, coordinator_id: str) -> list[CoordinatorAssignmentRecord]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(CoordinatorAssignment)
                .where(CoordinatorAssignment.coordinator_id == coordinator_id)
            )).scalars().all()
            return [CoordinatorAssignmentRecord.model_validate(r) for r in rows]

    async def add_assignment(self, coordinator_id: str, block_id: Optional[int]) -> CoordinatorAssignmentRecord:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(CoordinatorAssignment(coordinator_id=coordinator_id, block_id=block_id))
        return CoordinatorAssignmentRecord(coordinator_id=coordinator_id, block_id=block_id)

    async def record_duplicate(
        self,
        original_report_id: uuid.UUID,
        duplicate_report_id: uuid.UUID,
        similarity_score: float,
        created_at: datetime,
    ) -> Optional[DuplicateRelationship]:
        row = DuplicateReport(
            original_report_id=original_report_id,
            duplicate_report_id=duplicate_report_id,
            similarity_score=similarity_score,
            created_at=created_at,
        )
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(row)
            except IntegrityError:
                logger.info(
                    "duplicate_relationship_exists",
                    original_report_id=str(original_report_id),
                    duplicate_report_id=str(duplicate_report_id),
                )
                return None
        return DuplicateRelationship.model_validate(row)

    async def list_duplicates(self, report_id: uuid.UUID) -> list[DuplicateRelationship]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(DuplicateReport).where(or_(
                    DuplicateReport.original_report_id == report_id,
                    DuplicateReport.duplicate_report_id == report_id,
                ))
            )).scalars().all()
            return [DuplicateRelationship.model_validate(r) for r in rows]

    async def create_completion_detail(self, detail: CompletionDetailRecord) -> CompletionDetailRecord:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(CompletionDetail(**detail.model_dump()))
        return detail

    async def get_completion_detail(self, report_id: uuid.UUID) -> Optional[CompletionDetailRecord]:
        async with self._session_factory() as session:
            row = (await session.execute(
                select(CompletionDetail).where(CompletionDetail.report_id == report_id)
            )).scalar_one_or_none()
            return CompletionDetailRecord.model_validate(row) if row else None

    async def list_sla_candidates(self, exclude_statuses: Iterable[ReportStatus]) -> list[ReportRecord]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(Report).where(
                    Report.priority.is_not(None),
                    Report.status.not_in([column_value(s) for s in exclude_statuses]),
                )
            )).scalars().all()
            return [ReportRecord.model_validate(r) for r in rows]

    async def mark_sla_notified(self, report_id: uuid.UUID, notified_at: datetime) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Report)
                    .where(Report.id == report_id)
                    .values(sla_notified_at=notified_at)
                    .execution_options(synchronize_session=False)
                )
