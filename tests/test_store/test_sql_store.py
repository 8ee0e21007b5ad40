"""
Tests for the SQLAlchemy report store, run against in-memory SQLite.
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.lifecycle.coordinator import LifecycleCoordinator
from app.models.database import build_session_factory, create_all
from app.models.enums import Category, Priority, ReportStatus, WorkflowAction
from app.schemas.reports import CompletionDetailRecord, HistoryEntry, ReportCreate, SpecificLocation
from app.schemas.workflow import RatingRequest, TransitionPayload
from app.store.base import StaleStateError, TicketIdTaken
from app.store.sql import SqlReportStore

S = ReportStatus


@pytest.fixture
async def sql_store():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(engine)
    yield SqlReportStore(build_session_factory(engine))
    await engine.dispose()


def _submitted(report) -> HistoryEntry:
    return HistoryEntry(
        report_id=report.id,
        actor_id=report.submitted_by,
        to_status=S.SUBMITTED,
        action=WorkflowAction.SUBMIT,
        created_at=report.created_at,
    )


def _entry(report, to_status, action, clock) -> HistoryEntry:
    return HistoryEntry(
        report_id=report.id,
        actor_id="admin-1",
        from_status=report.status,
        to_status=to_status,
        action=action,
        created_at=clock.now(),
    )


class TestReports:

    async def test_create_and_get(self, sql_store, make_report):
        report = make_report()
        await sql_store.create_report(report, _submitted(report))

        by_id = await sql_store.get_report(report.id)
        by_ticket = await sql_store.get_report(report.ticket_id)
        assert by_id == report
        assert by_ticket.id == report.id
        assert by_id.status is S.SUBMITTED
        assert by_id.created_at.tzinfo is not None

    async def test_missing(self, sql_store):
        assert await sql_store.get_report(uuid.uuid4()) is None
        assert await sql_store.get_report("AASTU-FIX-20250115-0404") is None

    async def test_ticket_taken(self, sql_store, make_report):
        first = make_report()
        await sql_store.create_report(first, _submitted(first))
        clash = make_report(ticket_id=first.ticket_id)
        with pytest.raises(TicketIdTaken):
            await sql_store.create_report(clash, _submitted(clash))
        assert await sql_store.get_report(clash.id) is None

    async def test_count_created_between(self, sql_store, make_report, clock):
        start = clock.now().replace(hour=0)
        for created in (start - timedelta(minutes=1), start, clock.now(), start + timedelta(days=1)):
            r = make_report(created_at=created)
            await sql_store.create_report(r, _submitted(r))
        assert await sql_store.count_created_between(start, start + timedelta(days=1)) == 2

    async def test_find_candidates(self, sql_store, make_report, clock):
        rows = [
            make_report(),
            make_report(room_number="102"),
            make_report(status=S.CLOSED),
            make_report(category=Category.MECHANICAL),
            make_report(created_at=clock.now() - timedelta(days=40)),
        ]
        for r in rows:
            await sql_store.create_report(r, _submitted(r))

        found = await sql_store.find_candidates(
            block_id=5, room_number="101", category=Category.ELECTRICAL,
            exclude_statuses=[S.CLOSED], since=clock.now() - timedelta(days=30), limit=10,
        )
        assert [r.id for r in found] == [rows[0].id]

        any_room = await sql_store.find_candidates(
            block_id=5, room_number=None, category=Category.ELECTRICAL,
            exclude_statuses=[S.CLOSED], since=clock.now() - timedelta(days=30), limit=10,
        )
        assert {r.id for r in any_room} == {rows[0].id, rows[1].id}


class TestCompareAndSet:

    async def test_update_appends_history(self, sql_store, make_report, clock):
        report = make_report()
        await sql_store.create_report(report, _submitted(report))

        updated = await sql_store.update_in_transaction(
            report.id, S.SUBMITTED,
            {"status": S.UNDER_REVIEW, "updated_at": clock.now()},
            _entry(report, S.UNDER_REVIEW, WorkflowAction.REVIEW, clock),
        )
        assert updated.status is S.UNDER_REVIEW
        history = await sql_store.list_history(report.id)
        assert len(history) == 2
        assert {h.action for h in history} == {WorkflowAction.SUBMIT, WorkflowAction.REVIEW}

    async def test_history_ties_newest_first(self, sql_store, make_report, clock):
        # Every entry shares one timestamp; append order decides
        report = make_report()
        await sql_store.create_report(report, _submitted(report))
        await sql_store.update_in_transaction(
            report.id, S.SUBMITTED, {"status": S.UNDER_REVIEW},
            _entry(report, S.UNDER_REVIEW, WorkflowAction.REVIEW, clock),
        )
        await sql_store.update_in_transaction(
            report.id, S.UNDER_REVIEW, {"status": S.REJECTED, "rejection_reason": "Outside campus"},
            _entry(report, S.REJECTED, WorkflowAction.REJECT, clock),
        )

        history = await sql_store.list_history(report.id)
        assert [h.action for h in history] == [WorkflowAction.REJECT, WorkflowAction.REVIEW, WorkflowAction.SUBMIT]

    async def test_stale_status(self, sql_store, make_report, clock):
        report = make_report(status=S.UNDER_REVIEW)
        await sql_store.create_report(report, _submitted(report))

        with pytest.raises(StaleStateError):
            await sql_store.update_in_transaction(
                report.id, S.SUBMITTED,
                {"status": S.REJECTED, "rejection_reason": "Not our building"},
                _entry(report, S.REJECTED, WorkflowAction.REJECT, clock),
            )
        current = await sql_store.get_report(report.id)
        assert current.status is S.UNDER_REVIEW
        assert current.rejection_reason is None
        assert len(await sql_store.list_history(report.id)) == 1

    async def test_rating_written_once(self, sql_store, make_report, clock):
        report = make_report(status=S.COMPLETED, rating=4)
        await sql_store.create_report(report, _submitted(report))

        with pytest.raises(StaleStateError):
            await sql_store.update_in_transaction(
                report.id, S.COMPLETED,
                {"status": S.CLOSED, "rating": 5},
                _entry(report, S.CLOSED, WorkflowAction.RATE, clock),
            )
        assert (await sql_store.get_report(report.id)).rating == 4


class TestRelated:

    async def test_assignments(self, sql_store):
        await sql_store.add_assignment("coord-1", 5)
        await sql_store.add_assignment("coord-1", None)
        await sql_store.add_assignment("coord-2", 7)
        assignments = await sql_store.list_assignments("coord-1")
        assert {a.block_id for a in assignments} == {5, None}

    async def test_duplicate_pair_recorded_once(self, sql_store, make_report, clock):
        original, duplicate = make_report(), make_report()
        for r in (original, duplicate):
            await sql_store.create_report(r, _submitted(r))

        first = await sql_store.record_duplicate(original.id, duplicate.id, 0.91, clock.now())
        again = await sql_store.record_duplicate(original.id, duplicate.id, 0.91, clock.now())
        assert first.similarity_score == 0.91
        assert again is None
        assert len(await sql_store.list_duplicates(original.id)) == 1
        assert len(await sql_store.list_duplicates(duplicate.id)) == 1

    async def test_completion_detail(self, sql_store, make_report, clock):
        report = make_report(status=S.COMPLETED)
        await sql_store.create_report(report, _submitted(report))
        await sql_store.create_completion_detail(CompletionDetailRecord(
            report_id=report.id,
            completed_by="fixer-e1",
            completion_notes="Rewired the switch",
            completion_photos=["photos/1.jpg", "photos/2.jpg"],
            created_at=clock.now(),
        ))
        detail = await sql_store.get_completion_detail(report.id)
        assert detail.completion_photos == ["photos/1.jpg", "photos/2.jpg"]

    async def test_sla_candidates(self, sql_store, make_report):
        rows = [
            make_report(status=S.ASSIGNED, priority=Priority.HIGH),
            make_report(status=S.CLOSED, priority=Priority.HIGH),
            make_report(),
        ]
        for r in rows:
            await sql_store.create_report(r, _submitted(r))
        found = await sql_store.list_sla_candidates([S.CLOSED, S.REJECTED])
        assert [r.id for r in found] == [rows[0].id]

    async def test_mark_sla_notified(self, sql_store, make_report, clock):
        report = make_report(status=S.ASSIGNED, priority=Priority.EMERGENCY)
        await sql_store.create_report(report, _submitted(report))
        await sql_store.mark_sla_notified(report.id, clock.now())

        current = await sql_store.get_report(report.id)
        assert current.sla_notified_at == clock.now()
        assert current.status is S.ASSIGNED
        assert len(await sql_store.list_history(report.id)) == 1


class TestLifecycleOverSql:

    async def test_full_cycle(self, sql_store, sink, clock, config, reporter, admin, electrician):
        lifecycle = LifecycleCoordinator(sql_store, sink, clock=clock, config=config)
        created = await lifecycle.create_report_with_duplicate_check(ReportCreate(
            category=Category.ELECTRICAL,
            location=SpecificLocation(block_id=12, room_number="B4"),
            equipment_description="Wall socket",
            problem_description="Socket sparks when anything is plugged in",
        ), reporter)
        ref = created.report.ticket_id

        await lifecycle.transition(ref, S.UNDER_REVIEW, admin)
        await lifecycle.transition(
            ref, S.ASSIGNED, admin,
            TransitionPayload(priority=Priority.EMERGENCY, assigned_to="fixer-e1"),
        )
        await lifecycle.transition(ref, S.IN_PROGRESS, electrician)
        await lifecycle.transition(
            ref, S.COMPLETED, electrician,
            TransitionPayload(completion_notes="Replaced socket", completion_photos=["p.jpg"]),
        )
        result = await lifecycle.rate_report(ref, reporter, RatingRequest(rating=4))

        assert result.report.status is S.CLOSED
        assert result.report.rating == 4
        assert len(await lifecycle.history(ref)) == 6
        detail = await lifecycle.completion_detail(ref)
        assert detail.completion_photos == ["p.jpg"]
