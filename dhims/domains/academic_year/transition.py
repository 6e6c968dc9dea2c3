# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Current academic year transition.

Keeps exactly one academic year current. Switching the current year is
one atomic statement in the store; grade promotion then runs over the
students as a separate bulk operation. Promotion cannot share the
switch's transaction, so a promotion failure does not undo the switch:
it is reported as GradePromotionIncomplete alongside the new current
year, and the caller retries only what is left.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.errors import (
    GradePromotionIncomplete,
    StorageError,
    YearNotFound,
    storage_step,
)
from dhims.domains.academic_year.grade_promotion import GradePromotionEngine
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.models.academic_year import AcademicYear
from dhims.models.migration import ApplyResult

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of setting the current academic year.

    Attributes:
        year: The now-current academic year, as stored.
        previous_year: Year that was current before, if any.
        changed: False when the year was already current.
        promotion: Per-entry grade promotion outcome, if promotion ran.
        promotion_error: Set when promotion did not fully apply. The year
            switch itself still succeeded.
    """

    year: AcademicYear
    previous_year: AcademicYear | None = None
    changed: bool = True
    promotion: ApplyResult | None = None
    promotion_error: GradePromotionIncomplete | None = None

    @property
    def is_degraded(self) -> bool:
        return self.promotion_error is not None


class CurrentYearTransitionController:
    """Moves the current-year flag and promotes grades afterwards.

    Transitions issued through one controller are serialized; across
    processes the single conditional UPDATE keeps the flag consistent.

    Attributes:
        repository: Academic year repository.
        promotion: Grade promotion engine.
        audit: Optional audit trail.
    """

    def __init__(
        self,
        repository: AcademicYearRepository,
        promotion: GradePromotionEngine,
        audit: AuditTrail | None = None,
    ) -> None:
        self.repository = repository
        self.promotion = promotion
        self.audit = audit
        self._lock = asyncio.Lock()

    async def set_current(self, year_id: str, promote_grades: bool = True) -> TransitionResult:
        """Make an academic year the current one.

        Args:
            year_id: Academic year to make current.
            promote_grades: Apply the default grade promotion after the switch.

        Returns:
            TransitionResult with the new current year and the promotion outcome.

        Raises:
            YearNotFound: If the year does not exist.
            StorageError: If the switch itself fails, in which case nothing
                changed. Failures after the switch committed are reported
                on the result instead.
        """
        async with self._lock:
            target = await self.repository.get_by_id(year_id)
            if target.is_current:
                logger.info("Academic year %s is already current", target.year_name)
                return TransitionResult(year=target, previous_year=target, changed=False)

            previous = await self.repository.find_current()

            with storage_step("swap_current"):
                touched = await self.repository.store.set_current_year(year_id)
            if not touched:
                raise YearNotFound(year_id)

            try:
                current = await self.repository.get_by_id(year_id)
            except StorageError as e:
                logger.warning(
                    "Could not re-read academic year %s after the switch: %s", year_id, e
                )
                current = target.model_copy(update={"is_current": True})
            logger.info(
                "Set academic year %s as current (previous: %s)",
                current.year_name,
                previous.year_name if previous else None,
            )
            if self.audit:
                await self.audit.record(
                    AuditAction.ACADEMIC_YEAR_CHANGE,
                    "academic_year",
                    current.id,
                    f"Set {current.year_name} as current academic year",
                )

            result = TransitionResult(year=current, previous_year=previous)
            if promote_grades:
                await self._promote(result)
            return result

    async def _promote(self, result: TransitionResult) -> None:
        try:
            mapping = await self.promotion.propose_default_mapping()
        except StorageError as e:
            logger.error("Grade promotion could not start after switching to %s: %s",
                         result.year.year_name, e)
            result.promotion_error = GradePromotionIncomplete(cause=e)
            return

        applied = await self.promotion.apply_mapping(mapping)
        result.promotion = applied
        if not applied.is_complete:
            result.promotion_error = GradePromotionIncomplete(
                result=applied,
                remaining=applied.remaining(mapping.scope),
            )
            logger.warning(
                "Grade promotion incomplete after switching to %s: %s",
                result.year.year_name,
                applied.failed_labels,
            )
