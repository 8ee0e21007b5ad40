"""
Lifecycle coordinator: the entry point for every report mutation.

    create:      duplicate check -> ticket allocation -> insert + history
    transition:  read -> plan (state machine) -> CAS commit -> effects
    rate:        read -> resolve target -> plan -> CAS commit -> effects

Deferred effects (completion detail, SLA check, notifications) run only
after the commit and never roll it back.
"""

import uuid
from typing import Iterable, Optional

import structlog

from app.clock import Clock, SystemClock
from app.config import LifecycleConfig
from app.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from app.lifecycle.duplicates import DuplicateDetector
from app.lifecycle.rating import RatingResolver
from app.lifecycle.sla import SLA_EXEMPT_STATUSES, SlaCheck, SlaMonitor
from app.lifecycle.tickets import TicketAllocator
from app.lifecycle.workflow import (
    CheckSla,
    CreateCompletionDetail,
    Effect,
    NotifyTransition,
    TransitionPlan,
    WorkflowStateMachine,
)
from app.models.enums import (
    LocationType,
    NotificationType,
    ReportStatus,
    Role,
    WorkflowAction,
)
from app.observability.metrics import (
    notifications_failed_total,
    notifications_published_total,
    reports_created_total,
    sla_violations_total,
    workflow_stale_retries_total,
    workflow_transition_rejections_total,
    workflow_transitions_total,
)
from app.notifications.sinks import NotificationSink
from app.schemas.duplicates import CreateReportResult, DuplicateCheckResult, DuplicateRelationship
from app.schemas.notifications import NotificationEvent
from app.schemas.reports import (
    CompletionDetailRecord,
    CoordinatorAssignmentRecord,
    HistoryEntry,
    Identity,
    ReportCreate,
    ReportRecord,
    SpecificLocation,
)
from app.schemas.workflow import (
    AvailableTransition,
    RatingEligibility,
    RatingRequest,
    RatingResult,
    TransitionPayload,
    TransitionResult,
)
from app.store.base import ReportRef, ReportStore, StaleStateError

logger = structlog.get_logger(__name__)


class LifecycleCoordinator:

    def __init__(
        self,
        store: ReportStore,
        sink: NotificationSink,
        clock: Optional[Clock] = None,
        config: Optional[LifecycleConfig] = None,
    ):
        self.store = store
        self.sink = sink
        self.clock = clock or SystemClock()
        self.config = config or LifecycleConfig()

        self.detector = DuplicateDetector(store, self.clock, self.config)
        self.workflow = WorkflowStateMachine(self.config)
        self.sla = SlaMonitor(self.config)
        self.ratings = RatingResolver(self.config)
        self.tickets = TicketAllocator(
            store, self.clock, self.config.ticket_prefix, self.config.ticket_max_attempts,
        )

    # ── Lookups ──────────────────────────────────────────────

    async def get_report(self, ref: ReportRef) -> ReportRecord:
        report = await self.store.get_report(ref)
        if report is None:
            raise NotFoundError(f"Report not found: {ref}")
        return report

    async def _assignments_for(self, identity: Identity) -> list[CoordinatorAssignmentRecord]:
        if identity.role is not Role.COORDINATOR:
            return []
        return await self.store.list_assignments(identity.id)

    async def history(self, ref: ReportRef) -> list[HistoryEntry]:
        report = await self.get_report(ref)
        return await self.store.list_history(report.id)

    async def available_transitions(self, ref: ReportRef, identity: Identity) -> list[AvailableTransition]:
        report = await self.get_report(ref)
        assignments = await self._assignments_for(identity)
        return self.workflow.available_transitions(report, identity, assignments)

    async def related_duplicates(self, ref: ReportRef) -> list[DuplicateRelationship]:
        report = await self.get_report(ref)
        return await self.store.list_duplicates(report.id)

    async def completion_detail(self, ref: ReportRef) -> Optional[CompletionDetailRecord]:
        report = await self.get_report(ref)
        return await self.store.get_completion_detail(report.id)

    # ── Intake ───────────────────────────────────────────────

    async def check_duplicates(self, data: ReportCreate) -> DuplicateCheckResult:
        return await self.detector.check(
            data.category,
            data.location,
            data.equipment_description,
            data.problem_description,
        )

    async def create_report(self, data: ReportCreate, identity: Identity) -> ReportRecord:
        """Allocate a ticket ID and persist the report with its submission entry."""
        location = data.location
        specific = isinstance(location, SpecificLocation)

        async def insert(ticket_id: str) -> ReportRecord:
            now = self.clock.now()
            report = ReportRecord(
                id=uuid.uuid4(),
                ticket_id=ticket_id,
                category=data.category,
                location_type=LocationType.SPECIFIC if specific else LocationType.GENERAL,
                block_id=location.block_id if specific else None,
                room_number=location.room_number if specific else None,
                location_description=None if specific else location.description,
                equipment_description=data.equipment_description.strip(),
                problem_description=data.problem_description.strip(),
                status=ReportStatus.SUBMITTED,
                submitted_by=identity.id,
                created_at=now,
                updated_at=now,
            )
            entry = HistoryEntry(
                report_id=report.id,
                actor_id=identity.id,
                from_status=None,
                to_status=ReportStatus.SUBMITTED,
                action=WorkflowAction.SUBMIT,
                notes="Report submitted",
                created_at=now,
            )
            return await self.store.create_report(report, entry)

        report = await self.tickets.allocate(insert)

        reports_created_total.labels(category=report.category.value).inc()
        logger.info(
            "report_created",
            report_id=str(report.id),
            ticket_id=report.ticket_id,
            category=report.category.value,
            block_id=report.block_id,
            submitted_by=identity.id,
        )
        await self._notify(NotificationType.CREATED, report, {})
        return report

    async def create_report_with_duplicate_check(
        self,
        data: ReportCreate,
        identity: Identity,
        ignore_duplicates: bool = False,
    ) -> CreateReportResult:
        """
        Create a report unless a high-confidence duplicate exists.

        With ignore_duplicates the check still runs but cannot block; every
        high-confidence match is then recorded as a duplicate relationship
        of the new report.
        """
        duplicate_result = await self.check_duplicates(data)

        if duplicate_result.has_duplicates and not ignore_duplicates:
            logger.info(
                "report_blocked_by_duplicates",
                submitted_by=identity.id,
                matches=[d.ticket_id for d in duplicate_result.duplicates],
            )
            return CreateReportResult(
                success=False,
                duplicate_warning=True,
                duplicate_result=duplicate_result,
                message=duplicate_result.warning_message,
            )

        report = await self.create_report(data, identity)

        for match in duplicate_result.high_confidence:
            await self.store.record_duplicate(
                original_report_id=match.report_id,
                duplicate_report_id=report.id,
                similarity_score=match.similarity_score,
                created_at=self.clock.now(),
            )
            logger.info(
                "duplicate_relationship_recorded",
                original_ticket_id=match.ticket_id,
                duplicate_ticket_id=report.ticket_id,
                similarity_score=match.similarity_score,
            )

        return CreateReportResult(success=True, report=report, duplicate_result=duplicate_result)

    # ── Transitions ──────────────────────────────────────────

    async def _commit(self, plan: TransitionPlan) -> ReportRecord:
        return await self.store.update_in_transaction(
            plan.report.id, plan.from_status, plan.fields, plan.history,
        )

    async def _execute(self, ref: ReportRef, build_plan) -> tuple[TransitionPlan, ReportRecord]:
        """
        Plan against a fresh snapshot and commit with compare-and-set.
        A lost race re-reads and re-plans, so the retry is validated
        against the state that won.
        """
        for attempt in range(self.config.transition_max_attempts):
            report = await self.get_report(ref)
            try:
                plan = await build_plan(report)
            except (TransitionError, AuthorizationError, ValidationError, ConflictError) as e:
                workflow_transition_rejections_total.labels(error_code=e.error_code).inc()
                logger.info(
                    "transition_refused",
                    ticket_id=report.ticket_id,
                    status=report.status.value,
                    error_code=e.error_code,
                    reason=e.message,
                )
                raise

            try:
                updated = await self._commit(plan)
            except StaleStateError:
                workflow_stale_retries_total.inc()
                logger.info(
                    "transition_stale_retry",
                    ticket_id=report.ticket_id,
                    expected_status=plan.from_status.value,
                    attempt=attempt + 1,
                )
                continue

            workflow_transitions_total.labels(
                from_status=plan.from_status.value,
                to_status=plan.to_status.value,
                action=plan.action.value,
            ).inc()
            logger.info(
                "transition_executed",
                ticket_id=updated.ticket_id,
                from_status=plan.from_status.value,
                to_status=plan.to_status.value,
                action=plan.action.value,
                actor_id=plan.history.actor_id,
            )
            await self._run_effects(updated, plan.effects)
            return plan, updated

        raise ConflictError(
            f"Report {ref} changed concurrently; transition abandoned after "
            f"{self.config.transition_max_attempts} attempts",
            error_code="CONFLICT_003",
        )

    async def transition(
        self,
        ref: ReportRef,
        to_status: ReportStatus,
        identity: Identity,
        payload: Optional[TransitionPayload] = None,
    ) -> TransitionResult:
        async def build_plan(report: ReportRecord) -> TransitionPlan:
            assignments = await self._assignments_for(identity)
            return self.workflow.plan(
                report, ReportStatus(to_status), identity, payload, assignments, self.clock.now(),
            )

        plan, updated = await self._execute(ref, build_plan)
        return TransitionResult(
            report=updated,
            from_status=plan.from_status,
            to_status=plan.to_status,
            action=plan.action,
        )

    # ── Ratings ──────────────────────────────────────────────

    async def can_rate(self, ref: ReportRef, identity: Identity) -> RatingEligibility:
        report = await self.get_report(ref)
        return self.ratings.eligibility(report, identity, self.clock.now())

    async def rate_report(self, ref: ReportRef, identity: Identity, request: RatingRequest) -> RatingResult:
        async def build_plan(report: ReportRecord) -> TransitionPlan:
            now = self.clock.now()
            target = self.ratings.resolve(report, identity, request, now)
            assignments = await self._assignments_for(identity)
            extra = {"rating": request.rating, "feedback": request.comment}
            if target is ReportStatus.REOPENED:
                extra["reason"] = "Low rating or marked as still broken"
            elif target is ReportStatus.UNDER_REVIEW:
                extra["reason"] = "Rating requires coordinator review"
            return self.workflow.plan(
                report, target, identity, TransitionPayload(), assignments, now,
                rating=request, notification_extra=extra,
            )

        plan, updated = await self._execute(ref, build_plan)
        return RatingResult(
            report=updated,
            from_status=plan.from_status,
            to_status=plan.to_status,
            action=plan.action,
            rating=request.rating,
        )

    # ── SLA ──────────────────────────────────────────────────

    async def check_sla(self, report: ReportRecord) -> SlaCheck:
        """
        Check one report and emit sla_violation when it is late. A report
        already notified within sla_renotify_hours is not notified again.
        """
        now = self.clock.now()
        check = self.sla.check(report, now)
        if not check.violated:
            return check
        if self.sla.recently_notified(report, now):
            logger.debug("sla_violation_recently_notified", ticket_id=report.ticket_id)
            return check

        sla_violations_total.labels(priority=report.priority.value).inc()
        logger.warning(
            "sla_violation",
            ticket_id=report.ticket_id,
            priority=report.priority.value,
            sla_hours=check.sla_hours,
            hours_elapsed=check.hours_elapsed,
        )
        await self._notify(NotificationType.SLA_VIOLATION, report, {
            "violation_hours": check.violation_hours,
            "sla_hours": check.sla_hours,
            "priority": report.priority.value,
        })
        await self.store.mark_sla_notified(report.id, now)
        return check.model_copy(update={"notified": True})

    async def _check_sla_safely(self, report: ReportRecord) -> Optional[SlaCheck]:
        try:
            return await self.check_sla(report)
        except Exception as e:
            logger.error("sla_check_failed", ticket_id=report.ticket_id, error=str(e))
            return None

    async def sla_sweep(self, exclude_statuses: Iterable[ReportStatus] = SLA_EXEMPT_STATUSES) -> list[SlaCheck]:
        """Check every open prioritised report; returns the violations this run notified."""
        notified = []
        for report in await self.store.list_sla_candidates(exclude_statuses):
            check = await self._check_sla_safely(report)
            if check is not None and check.notified:
                notified.append(check)
        return notified

    # ── Effects ──────────────────────────────────────────────

    async def _run_effects(self, report: ReportRecord, effects: Iterable[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, CreateCompletionDetail):
                await self._create_completion_detail(report, effect)
            elif isinstance(effect, CheckSla):
                await self._check_sla_safely(report)
            elif isinstance(effect, NotifyTransition):
                await self._notify(effect.event_type, report, effect.extra)
            else:
                logger.error("unknown_effect", effect=repr(effect))

    async def _create_completion_detail(self, report: ReportRecord, effect: CreateCompletionDetail) -> None:
        detail = CompletionDetailRecord(
            report_id=report.id,
            completed_by=effect.completed_by,
            completion_notes=effect.completion_notes,
            parts_used=effect.parts_used,
            time_spent_minutes=effect.time_spent_minutes,
            completion_photos=list(effect.completion_photos),
            created_at=self.clock.now(),
        )
        try:
            await self.store.create_completion_detail(detail)
        except Exception as e:
            # The transition is committed; the detail row can be rebuilt from the report
            logger.error("completion_detail_failed", ticket_id=report.ticket_id, error=str(e))

    async def _notify(self, event_type: NotificationType, report: ReportRecord, extra: dict) -> None:
        event = NotificationEvent(
            type=event_type, report=report, extra=extra, occurred_at=self.clock.now(),
        )
        try:
            await self.sink.publish(event)
            notifications_published_total.labels(event_type=event_type.value).inc()
        except Exception as e:
            notifications_failed_total.labels(event_type=event_type.value).inc()
            logger.warning(
                "notification_publish_failed",
                event_type=event_type.value,
                ticket_id=report.ticket_id,
                error=str(e),
            )
