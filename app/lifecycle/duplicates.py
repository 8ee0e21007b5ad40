"""
Duplicate submission detector.

Scores an incoming report against recent open reports at the same block
(and room, when given) in the same category:

    score = 0.6 * sim(equipment) + 0.4 * sim(problem)

score >= 0.70 is a high-confidence duplicate and blocks creation unless the
caller overrides; 0.50-0.69 is shown as a low-confidence match only.
Detection is advisory: any failure degrades to "no duplicates".
"""

from datetime import timedelta
from typing import Optional, Union

import structlog

from app.clock import Clock
from app.config import LifecycleConfig
from app.errors import DetectorUnavailable
from app.lifecycle.similarity import text_similarity
from app.models.enums import INACTIVE_STATUSES, Category
from app.observability.metrics import duplicate_checks_total, duplicate_scores
from app.schemas.duplicates import DuplicateCheckResult, DuplicateMatch
from app.schemas.reports import GeneralLocation, ReportRecord, SpecificLocation
from app.store.base import ReportStore

logger = structlog.get_logger(__name__)

UNAVAILABLE_MESSAGE = "Duplicate detection temporarily unavailable"


def build_warning_message(duplicates: list[DuplicateMatch]) -> str:
    if len(duplicates) == 1:
        d = duplicates[0]
        return (
            f"A similar report ({d.ticket_id}) was already submitted for this location. "
            f"The existing report is currently \"{d.status.value}\". "
            "Please check if this is the same issue before submitting."
        )
    return (
        f"{len(duplicates)} similar reports have been found for this location. "
        "Please review the existing reports to avoid duplicates. "
        "You can still submit if this is a different issue."
    )


class DuplicateDetector:

    def __init__(self, store: ReportStore, clock: Clock, config: LifecycleConfig):
        self.store = store
        self.clock = clock
        self.config = config

    def score(
        self,
        equipment_description: Optional[str],
        problem_description: Optional[str],
        candidate: ReportRecord,
    ) -> DuplicateMatch:
        weights = self.config.similarity_weights
        equipment = text_similarity(equipment_description, candidate.equipment_description, weights)
        problem = text_similarity(problem_description, candidate.problem_description, weights)
        combined = min(1.0, max(0.0,
            self.config.equipment_weight * equipment + self.config.problem_weight * problem
        ))
        score = round(combined, 2)
        return DuplicateMatch(
            report_id=candidate.id,
            ticket_id=candidate.ticket_id,
            equipment_description=candidate.equipment_description,
            problem_description=candidate.problem_description,
            status=candidate.status,
            priority=candidate.priority,
            submitted_by=candidate.submitted_by,
            created_at=candidate.created_at,
            block_id=candidate.block_id,
            room_number=candidate.room_number,
            similarity_score=score,
            equipment_similarity=round(equipment, 2),
            problem_similarity=round(problem, 2),
            high_confidence=score >= self.config.duplicate_high_threshold,
        )

    async def find_candidates(self, category: Category, location: SpecificLocation) -> list[ReportRecord]:
        since = self.clock.now() - timedelta(days=self.config.duplicate_window_days)
        return await self.store.find_candidates(
            block_id=location.block_id,
            room_number=location.room_number,
            category=category,
            exclude_statuses=INACTIVE_STATUSES,
            since=since,
            limit=self.config.duplicate_candidate_limit,
        )

    async def _score_candidates(
        self,
        category: Category,
        location: SpecificLocation,
        equipment_description: Optional[str],
        problem_description: Optional[str],
    ) -> list[DuplicateMatch]:
        try:
            candidates = await self.find_candidates(category, location)
            matches = [self.score(equipment_description, problem_description, c) for c in candidates]
        except Exception as e:
            raise DetectorUnavailable(f"Duplicate scoring failed: {e}") from e
        matches.sort(key=lambda m: m.similarity_score, reverse=True)
        return matches

    async def check(
        self,
        category: Category,
        location: Union[SpecificLocation, GeneralLocation],
        equipment_description: Optional[str],
        problem_description: Optional[str],
    ) -> DuplicateCheckResult:
        """Run a duplicate check. Never raises."""
        # Duplicate checking needs a fixed block to anchor on
        if not isinstance(location, SpecificLocation) or not location.block_id:
            duplicate_checks_total.labels(outcome="skipped").inc()
            return DuplicateCheckResult()

        try:
            matches = await self._score_candidates(
                category, location, equipment_description, problem_description
            )
        except DetectorUnavailable as e:
            duplicate_checks_total.labels(outcome="unavailable").inc()
            logger.warning("duplicate_detector_unavailable", error=str(e), block_id=location.block_id)
            return DuplicateCheckResult(detector_available=False, error=UNAVAILABLE_MESSAGE)

        if matches:
            duplicate_scores.observe(matches[0].similarity_score)

        high = [m for m in matches if m.high_confidence]
        if high:
            duplicate_checks_total.labels(outcome="high").inc()
            logger.info(
                "duplicates_detected",
                block_id=location.block_id,
                count=len(high),
                best_score=high[0].similarity_score,
                ticket_ids=[m.ticket_id for m in high],
            )
            return DuplicateCheckResult(
                has_duplicates=True,
                duplicates=high,
                warning_message=build_warning_message(high),
                allow_anyway=True,
            )

        low = [m for m in matches if m.similarity_score >= self.config.duplicate_low_threshold]
        duplicate_checks_total.labels(outcome="low" if low else "none").inc()
        return DuplicateCheckResult(duplicates=low)
