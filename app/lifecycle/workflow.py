"""
Report workflow state machine.

Defines the status graph, which roles may take each edge, which payload
fields each edge needs, and the per-report authorization rules. Planning a
transition is pure: it returns the field updates, the history entry and a
list of deferred effects, or raises before anything is mutated. The
lifecycle coordinator commits the plan and runs the effects after commit.

    submitted    -> under_review | rejected
    under_review -> approved | rejected | assigned (approve and assign)
    approved     -> assigned
    rejected     -> under_review
    assigned     -> in_progress
    in_progress  -> completed
    completed    -> closed | reopened | under_review
    closed       -> reopened
    reopened     -> assigned
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from app.config import LifecycleConfig
from app.errors import AuthorizationError, TransitionError, ValidationError
from app.lifecycle.rating import rating_notes
from app.models.enums import NotificationType, ReportStatus, Role, WorkflowAction
from app.schemas.reports import CoordinatorAssignmentRecord, HistoryEntry, Identity, ReportRecord
from app.schemas.workflow import AvailableTransition, RatingRequest, TransitionPayload

S = ReportStatus
A = WorkflowAction

TRIAGE_ROLES = frozenset({Role.COORDINATOR, Role.ADMIN})
FIXER_ROLES = frozenset({Role.ELECTRICAL_FIXER, Role.MECHANICAL_FIXER, Role.ADMIN})
FEEDBACK_ROLES = frozenset({Role.REPORTER, Role.COORDINATOR, Role.ADMIN})

REJECTION_REASON_MIN = 10
TIME_SPENT_MIN = 1
TIME_SPENT_MAX = 1440  # one working day, in minutes


@dataclass(frozen=True)
class Edge:
    from_status: ReportStatus
    to_status: ReportStatus
    action: WorkflowAction
    roles: frozenset
    required_fields: tuple = ()


BASE_EDGES = (
    Edge(S.SUBMITTED, S.UNDER_REVIEW, A.REVIEW, TRIAGE_ROLES),
    Edge(S.SUBMITTED, S.REJECTED, A.REJECT, TRIAGE_ROLES, ("rejection_reason",)),
    Edge(S.UNDER_REVIEW, S.APPROVED, A.APPROVE, TRIAGE_ROLES, ("priority",)),
    Edge(S.UNDER_REVIEW, S.REJECTED, A.REJECT, TRIAGE_ROLES, ("rejection_reason",)),
    Edge(S.APPROVED, S.ASSIGNED, A.ASSIGN, TRIAGE_ROLES, ("assigned_to",)),
    Edge(S.REJECTED, S.UNDER_REVIEW, A.REOPEN, TRIAGE_ROLES),
    Edge(S.ASSIGNED, S.IN_PROGRESS, A.START_WORK, FIXER_ROLES),
    Edge(S.IN_PROGRESS, S.COMPLETED, A.COMPLETE, FIXER_ROLES, ("completion_notes",)),
    Edge(S.COMPLETED, S.CLOSED, A.CLOSE, FEEDBACK_ROLES),
    Edge(S.COMPLETED, S.REOPENED, A.REOPEN, FEEDBACK_ROLES),
    Edge(S.COMPLETED, S.UNDER_REVIEW, A.REVIEW_RATING, FEEDBACK_ROLES),
    Edge(S.CLOSED, S.REOPENED, A.REOPEN, FEEDBACK_ROLES),
    Edge(S.REOPENED, S.ASSIGNED, A.REASSIGN, TRIAGE_ROLES, ("assigned_to",)),
)

# Coordinator review shortcut: approve with a priority and hand to a fixer in one step
APPROVE_AND_ASSIGN_EDGE = Edge(
    S.UNDER_REVIEW, S.ASSIGNED, A.APPROVE_AND_ASSIGN, TRIAGE_ROLES, ("priority", "assigned_to"),
)

NOTIFICATION_FOR_STATUS = {
    S.SUBMITTED: NotificationType.CREATED,
    S.UNDER_REVIEW: NotificationType.UNDER_REVIEW,
    S.APPROVED: NotificationType.APPROVED,
    S.REJECTED: NotificationType.REJECTED,
    S.ASSIGNED: NotificationType.ASSIGNED,
    S.IN_PROGRESS: NotificationType.IN_PROGRESS,
    S.COMPLETED: NotificationType.COMPLETED,
    S.CLOSED: NotificationType.CLOSED,
    S.REOPENED: NotificationType.REOPENED,
}


# ─── Deferred effects ────────────────────────────────────────

@dataclass(frozen=True)
class NotifyTransition:
    event_type: NotificationType
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CreateCompletionDetail:
    completed_by: str
    completion_notes: str
    parts_used: Optional[str] = None
    time_spent_minutes: Optional[int] = None
    completion_photos: tuple = ()


@dataclass(frozen=True)
class CheckSla:
    pass


Effect = Union[NotifyTransition, CreateCompletionDetail, CheckSla]


@dataclass(frozen=True)
class TransitionPlan:
    report: ReportRecord
    edge: Edge
    fields: dict
    history: HistoryEntry
    effects: tuple

    @property
    def from_status(self) -> ReportStatus:
        return self.edge.from_status

    @property
    def to_status(self) -> ReportStatus:
        return self.edge.to_status

    @property
    def action(self) -> WorkflowAction:
        return self.history.action


def coordinator_has_access(
    coordinator_id: str,
    assignments: list[CoordinatorAssignmentRecord],
    report: ReportRecord,
) -> bool:
    """
    A wildcard assignment covers every block and general-location reports;
    a block assignment covers reports in that block only.
    """
    own = [a for a in assignments if a.coordinator_id == coordinator_id]
    if any(a.is_wildcard for a in own):
        return True
    if report.block_id is None:
        return False
    return any(a.block_id == report.block_id for a in own)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class WorkflowStateMachine:

    def __init__(self, config: LifecycleConfig):
        self.config = config
        edges = list(BASE_EDGES)
        if config.allow_approve_and_assign:
            edges.append(APPROVE_AND_ASSIGN_EDGE)
        self.graph: dict[ReportStatus, dict[ReportStatus, Edge]] = {s: {} for s in ReportStatus}
        for edge in edges:
            self.graph[edge.from_status][edge.to_status] = edge

    # ── Graph ────────────────────────────────────────────────

    def allowed_targets(self, from_status: ReportStatus) -> list[ReportStatus]:
        return list(self.graph[ReportStatus(from_status)])

    def edge(self, from_status: ReportStatus, to_status: ReportStatus) -> Edge:
        from_status, to_status = ReportStatus(from_status), ReportStatus(to_status)
        edge = self.graph[from_status].get(to_status)
        if edge is None:
            raise TransitionError(
                f"Transition from {from_status.value} to {to_status.value} is not allowed",
                details={"from_status": from_status.value, "to_status": to_status.value},
            )
        return edge

    def required_fields(self, from_status: ReportStatus, to_status: ReportStatus) -> list[str]:
        return list(self.edge(from_status, to_status).required_fields)

    # ── Authorization ────────────────────────────────────────

    def authorize(
        self,
        edge: Edge,
        report: ReportRecord,
        identity: Identity,
        assignments: list[CoordinatorAssignmentRecord],
    ) -> None:
        role = identity.role
        if role not in edge.roles:
            raise AuthorizationError(
                f"Role {role.value} is not authorized to transition from {edge.from_status.value}"
            )

        if role is Role.ADMIN:
            return

        if role is Role.REPORTER:
            if report.submitted_by != identity.id:
                raise AuthorizationError("Reporters can only transition their own reports")
            return

        if role is Role.COORDINATOR:
            if not coordinator_has_access(identity.id, assignments, report):
                raise AuthorizationError("Coordinator does not have access to this report")
            return

        if role is Role.ELECTRICAL_FIXER or role is Role.MECHANICAL_FIXER:
            specialty = role.specialty
            if report.category != specialty:
                raise AuthorizationError(f"{role.value} can only work on {specialty.value} reports")
            if (
                edge.from_status is S.ASSIGNED
                and report.assigned_to
                and report.assigned_to != identity.id
            ):
                raise AuthorizationError("Report is assigned to a different fixer")
            return

        raise AuthorizationError(f"Unhandled role: {role.value}")

    # ── Field rules ──────────────────────────────────────────

    def _apply_fields(
        self,
        edge: Edge,
        report: ReportRecord,
        identity: Identity,
        payload: TransitionPayload,
        now: datetime,
    ) -> tuple[dict, list]:
        fields: dict = {"status": edge.to_status, "updated_at": now}
        effects: list = []

        if "priority" in edge.required_fields:
            if payload.priority is None:
                raise ValidationError("Priority is required when approving a report")
            fields["priority"] = payload.priority

        if "rejection_reason" in edge.required_fields:
            reason = (payload.rejection_reason or "").strip()
            if len(reason) < REJECTION_REASON_MIN:
                raise ValidationError(
                    f"Rejection reason is required and must be at least {REJECTION_REASON_MIN} characters"
                )
            fields["rejection_reason"] = reason

        if "assigned_to" in edge.required_fields:
            if _blank(payload.assigned_to):
                raise ValidationError("Assignee is required when assigning a report")
            fields["assigned_to"] = payload.assigned_to.strip()

        if edge.to_status is S.IN_PROGRESS and report.assigned_to is None and identity.role.is_fixer:
            # An unassigned report is claimed by the fixer who starts it
            fields["assigned_to"] = identity.id

        if "completion_notes" in edge.required_fields:
            if _blank(payload.completion_notes):
                raise ValidationError("Completion notes are required when completing a report")
            minutes = payload.time_spent_minutes
            if minutes is not None and not TIME_SPENT_MIN <= minutes <= TIME_SPENT_MAX:
                raise ValidationError(
                    f"Time spent must be between {TIME_SPENT_MIN} and {TIME_SPENT_MAX} minutes"
                )
            notes = payload.completion_notes.strip()
            parts = payload.parts_used.strip() if payload.parts_used else None
            fields.update({
                "completion_notes": notes,
                "parts_used": parts,
                "time_spent_minutes": minutes,
                "completed_at": now,
            })
            effects.append(CreateCompletionDetail(
                completed_by=identity.id,
                completion_notes=notes,
                parts_used=parts,
                time_spent_minutes=minutes,
                completion_photos=tuple(payload.completion_photos),
            ))

        return fields, effects

    # ── Planning ─────────────────────────────────────────────

    def plan(
        self,
        report: ReportRecord,
        to_status: ReportStatus,
        identity: Identity,
        payload: Optional[TransitionPayload] = None,
        assignments: Optional[list[CoordinatorAssignmentRecord]] = None,
        now: Optional[datetime] = None,
        rating: Optional[RatingRequest] = None,
        notification_extra: Optional[dict] = None,
    ) -> TransitionPlan:
        """
        Validate and plan one transition against the given snapshot.

        Raises TransitionError, AuthorizationError or ValidationError, in
        that order of checking. Nothing is mutated.
        """
        payload = payload or TransitionPayload()
        now = now or report.updated_at
        edge = self.edge(report.status, ReportStatus(to_status))
        self.authorize(edge, report, identity, assignments or [])
        fields, effects = self._apply_fields(edge, report, identity, payload, now)

        action = edge.action
        notes = payload.notes
        if rating is not None:
            action = A.RATE
            fields["rating"] = rating.rating
            fields["feedback"] = (rating.comment or "").strip() or None
            notes = rating_notes(rating)

        history = HistoryEntry(
            report_id=report.id,
            actor_id=identity.id,
            from_status=edge.from_status,
            to_status=edge.to_status,
            action=action,
            notes=notes,
            created_at=now,
        )

        extra = {"previous_status": edge.from_status.value, "action": action.value}
        if edge.to_status is S.REJECTED:
            extra["rejection_reason"] = fields["rejection_reason"]
        if edge.to_status is S.ASSIGNED:
            extra["assigned_to"] = fields["assigned_to"]
        extra.update(notification_extra or {})

        effects.append(CheckSla())
        effects.append(NotifyTransition(NOTIFICATION_FOR_STATUS[edge.to_status], extra))

        return TransitionPlan(
            report=report,
            edge=edge,
            fields=fields,
            history=history,
            effects=tuple(effects),
        )

    def available_transitions(
        self,
        report: ReportRecord,
        identity: Identity,
        assignments: Optional[list[CoordinatorAssignmentRecord]] = None,
    ) -> list[AvailableTransition]:
        """Edges out of the current status that identity may take."""
        available = []
        for edge in self.graph[report.status].values():
            try:
                self.authorize(edge, report, identity, assignments or [])
            except AuthorizationError:
                continue
            available.append(AvailableTransition(
                to_status=edge.to_status,
                action=edge.action,
                requires_data=list(edge.required_fields),
            ))
        return available
