"""
Rating resolver: closed-loop customer rating -> workflow target status.

    rating <= 1 or still broken  -> reopened
    rating 2..3                  -> under_review (coordinator re-review)
    rating >= 4                  -> closed
"""

from datetime import datetime, timedelta
from typing import Optional

from app.config import LifecycleConfig
from app.errors import AuthorizationError, ConflictError, TransitionError, ValidationError
from app.models.enums import ReportStatus
from app.schemas.reports import Identity, ReportRecord
from app.schemas.workflow import RatingEligibility, RatingRequest

RATING_MIN = 0
RATING_MAX = 5
LOW_RATING_COMMENT_MIN = 20
COMMENT_MAX = 500


def validate_rating(request: RatingRequest) -> None:
    """Field checks that do not need the report."""
    if not isinstance(request.rating, int) or not RATING_MIN <= request.rating <= RATING_MAX:
        raise ValidationError(f"Rating must be an integer between {RATING_MIN} and {RATING_MAX}")

    comment = (request.comment or "").strip()
    if request.rating <= 3 and len(comment) < LOW_RATING_COMMENT_MIN:
        raise ValidationError(
            f"Comment is required and must be at least {LOW_RATING_COMMENT_MIN} characters for ratings 0-3"
        )
    if len(comment) > COMMENT_MAX:
        raise ValidationError(f"Comment must not exceed {COMMENT_MAX} characters")


def resolve_target(rating: int, mark_still_broken: bool = False) -> ReportStatus:
    if rating <= 1 or mark_still_broken:
        return ReportStatus.REOPENED
    if rating <= 3:
        return ReportStatus.UNDER_REVIEW
    return ReportStatus.CLOSED


def rating_notes(request: RatingRequest) -> str:
    notes = f"Rating: {request.rating}/5"
    comment = (request.comment or "").strip()
    if comment:
        notes += f" - {comment}"
    if request.mark_still_broken:
        notes += " (marked as still broken)"
    return notes


class RatingResolver:

    def __init__(self, config: LifecycleConfig):
        self.config = config

    def window_closes_at(self, report: ReportRecord) -> Optional[datetime]:
        if report.completed_at is None:
            return None
        return report.completed_at + timedelta(days=self.config.rating_window_days)

    def check_eligibility(self, report: ReportRecord, identity: Identity, now: datetime) -> None:
        """Raise the matching domain error if identity may not rate report now."""
        if report.submitted_by != identity.id:
            raise AuthorizationError("You can only rate your own reports")
        if report.rating is not None:
            raise ConflictError("This report has already been rated", error_code="REPORT_004")
        if report.status != ReportStatus.COMPLETED:
            raise TransitionError(
                f"Only completed reports can be rated (current status: {report.status.value})"
            )
        closes_at = self.window_closes_at(report)
        if closes_at is not None and now > closes_at:
            raise ValidationError(
                f"Rating window has expired ({self.config.rating_window_days} days after completion)",
                error_code="VALID_004",
            )

    def eligibility(self, report: ReportRecord, identity: Identity, now: datetime) -> RatingEligibility:
        try:
            self.check_eligibility(report, identity, now)
        except (AuthorizationError, ConflictError, TransitionError, ValidationError) as e:
            return RatingEligibility(can_rate=False, reason=e.message, ticket_id=report.ticket_id)
        return RatingEligibility(can_rate=True, ticket_id=report.ticket_id)

    def resolve(self, report: ReportRecord, identity: Identity, request: RatingRequest, now: datetime) -> ReportStatus:
        """Validate the rating and return the status the report moves to."""
        validate_rating(request)
        self.check_eligibility(report, identity, now)
        return resolve_target(request.rating, request.mark_still_broken)
