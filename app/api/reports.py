"""
/api/v1/reports endpoints.
Thin adapter over the lifecycle coordinator: intake, transitions, ratings
and read-only views of history and duplicates.
"""

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_identity, get_lifecycle
from app.errors import DuplicateReportError
from app.lifecycle.coordinator import LifecycleCoordinator
from app.schemas.duplicates import CreateReportResult, DuplicateCheckResult, DuplicateRelationship
from app.schemas.reports import HistoryEntry, Identity, ReportCreate, ReportRecord
from app.schemas.workflow import (
    AvailableTransition,
    RatingEligibility,
    RatingRequest,
    RatingResult,
    TransitionRequest,
    TransitionResult,
    TransitionPayload,
)

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.post("", response_model=CreateReportResult, status_code=status.HTTP_201_CREATED)
async def create_report(
    body: ReportCreate,
    ignore_duplicates: bool = Query(False),
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    """Submit a report. A high-confidence duplicate returns 409 with the matches."""
    result = await lifecycle.create_report_with_duplicate_check(body, identity, ignore_duplicates)
    if not result.success:
        raise DuplicateReportError(
            result.message or "Possible duplicate report",
            details={"duplicate_result": result.duplicate_result.model_dump(mode="json")},
        )
    return result


@router.post("/duplicates/check", response_model=DuplicateCheckResult)
async def check_duplicates(
    body: ReportCreate,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    """Score a draft report without creating it."""
    return await lifecycle.check_duplicates(body)


@router.get("/{ref}", response_model=ReportRecord)
async def get_report(
    ref: str,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    """Fetch a report by UUID or ticket ID."""
    return await lifecycle.get_report(ref)


@router.get("/{ref}/history", response_model=list[HistoryEntry])
async def get_history(
    ref: str,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.history(ref)


@router.get("/{ref}/transitions", response_model=list[AvailableTransition])
async def list_transitions(
    ref: str,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    """Transitions the caller may take from the report's current status."""
    return await lifecycle.available_transitions(ref, identity)


@router.post("/{ref}/transitions", response_model=TransitionResult)
async def execute_transition(
    ref: str,
    body: TransitionRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    payload = TransitionPayload(**body.model_dump(exclude={"to_status"}))
    return await lifecycle.transition(ref, body.to_status, identity, payload)


@router.post("/{ref}/rating", response_model=RatingResult)
async def rate_report(
    ref: str,
    body: RatingRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.rate_report(ref, identity, body)


@router.get("/{ref}/rating/eligibility", response_model=RatingEligibility)
async def rating_eligibility(
    ref: str,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.can_rate(ref, identity)


@router.get("/{ref}/duplicates", response_model=list[DuplicateRelationship])
async def related_duplicates(
    ref: str,
    identity: Identity = Depends(get_identity),
    lifecycle: LifecycleCoordinator = Depends(get_lifecycle),
):
    return await lifecycle.related_duplicates(ref)
