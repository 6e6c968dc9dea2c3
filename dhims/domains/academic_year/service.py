# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Academic year service for the console's presentation layer.

This module provides the AcademicYearService class for:
- Academic year CRUD operations
- Setting the current academic year (with grade promotion)
- Copying data between academic years
- Deleting a year's transactional data
- First-run initialization of a current year
"""

from __future__ import annotations

import logging
from datetime import date

from dhims.core.config.settings import AcademicYearSettings, get_settings
from dhims.domains.academic_year.audit import AuditTrail
from dhims.domains.academic_year.copy_operation import CopyOperation, CopyOperationEngine
from dhims.domains.academic_year.errors import storage_step
from dhims.domains.academic_year.grade_promotion import GradePromotionEngine
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.domains.academic_year.retention import DataRetentionService
from dhims.domains.academic_year.transition import (
    CurrentYearTransitionController,
    TransitionResult,
)
from dhims.domains.academic_year.validator import YearValidator
from dhims.infrastructure.database.store import RecordStore
from dhims.infrastructure.database.tables import YEAR_SCOPE_COLUMNS
from dhims.models.academic_year import (
    AcademicYear,
    AcademicYearCreateRequest,
    AcademicYearUpdateRequest,
    CopyDestination,
    NewYearDestination,
    YearSummary,
)
from dhims.models.migration import CopyCategory, DeletionResult
from dhims.utils.datetime import calendar_year_bounds, utc_today

logger = logging.getLogger(__name__)


class AcademicYearService:
    """Entry point wiring the academic year components together.

    Attributes:
        settings: Academic year conventions.
        audit: Audit trail shared by all components.
        validator: Year validator.
        repository: Academic year repository.
        promotion: Grade promotion engine.
        transitions: Current year transition controller.
        copies: Copy operation engine.
        retention: Data retention service.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: AcademicYearSettings | None = None,
        user_id: str | None = None,
    ) -> None:
        """Initialize academic year service.

        Args:
            store: Record store for the console database.
            settings: Academic year conventions; loaded from the
                environment when omitted.
            user_id: Acting user, recorded in the audit log.
        """
        self.settings = settings or get_settings().academic_year
        self.audit = AuditTrail(store, user_id=user_id, enabled=self.settings.audit_enabled)
        self.validator = YearValidator(self.settings.year_name_format)
        self.repository = AcademicYearRepository(store, self.validator, self.audit)
        self.promotion = GradePromotionEngine(store, self.settings, self.audit)
        self.transitions = CurrentYearTransitionController(
            self.repository, self.promotion, self.audit
        )
        self.copies = CopyOperationEngine(self.repository, self.promotion, self.audit)
        self.retention = DataRetentionService(self.repository, self.audit)

    async def create_academic_year(
        self,
        request: AcademicYearCreateRequest,
    ) -> tuple[AcademicYear, TransitionResult | None]:
        """Create an academic year, making it current if requested.

        Returns:
            Tuple of (created year as stored, transition result when the
            year was made current).

        Raises:
            ValidationError: If the name or dates are invalid or the name is taken.
            StorageError: If the backend fails.
        """
        academic_year = await self.repository.create(request)
        if not request.is_current:
            return academic_year, None

        transition = await self.transitions.set_current(academic_year.id)
        return transition.year, transition

    async def list_academic_years(self) -> list[AcademicYear]:
        """List all academic years, latest first."""
        return await self.repository.list_all()

    async def get_academic_year(self, year_id: str) -> AcademicYear:
        return await self.repository.get_by_id(year_id)

    async def get_current_year(self) -> AcademicYear | None:
        return await self.repository.find_current()

    async def update_academic_year(
        self,
        year_id: str,
        request: AcademicYearUpdateRequest,
    ) -> AcademicYear:
        return await self.repository.update(year_id, request)

    async def delete_academic_year(self, year_id: str) -> AcademicYear:
        """Delete a year record. Its data is kept; see delete_year_data()."""
        return await self.repository.delete(year_id)

    async def set_current_year(self, year_id: str) -> TransitionResult:
        """Make a year current and promote every active student's grade."""
        return await self.transitions.set_current(year_id)

    async def start_copy(
        self,
        source_year_id: str,
        destination: CopyDestination,
        categories: list[CopyCategory | str],
    ) -> CopyOperation:
        """Configure a copy; drive it further through `copies`."""
        return await self.copies.configure(source_year_id, destination, categories)

    async def delete_year_data(self, year_name: str) -> DeletionResult:
        return await self.retention.delete_year_data(year_name)

    async def get_year_summary(self, year_id: str) -> YearSummary:
        """Count the rows recorded under a year in each per-year table."""
        academic_year = await self.repository.get_by_id(year_id)
        counts: dict[str, int] = {}
        with storage_step("year_summary"):
            for table, column in YEAR_SCOPE_COLUMNS.items():
                counts[table] = await self.repository.store.count(
                    table, {column: academic_year.year_name}
                )
        return YearSummary(year=academic_year, counts=counts)

    async def initialize(self, today: date | None = None) -> AcademicYear:
        """Ensure a current academic year exists.

        When none is current, the year for today's calendar year is
        created if needed and made current without promoting grades.

        Args:
            today: Reference date; defaults to today in UTC.

        Returns:
            The current academic year.
        """
        current = await self.repository.find_current()
        if current is not None:
            return current

        today = today or utc_today()
        year_name = self.validator.year_name_for(today.year)
        academic_year = await self.repository.find_by_name(year_name)
        if academic_year is None:
            start_date, end_date = calendar_year_bounds(today.year)
            academic_year = await self.repository.create(
                NewYearDestination(year_name=year_name, start_date=start_date, end_date=end_date)
            )

        transition = await self.transitions.set_current(academic_year.id, promote_grades=False)
        logger.info("Initialized current academic year %s", transition.year.year_name)
        return transition.year
