# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Academic year repository.

CRUD access to academic_years records. The repository never sets
is_current: new records are always inserted as not current and the
flag only moves through CurrentYearTransitionController.
"""

from __future__ import annotations

import logging

from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.errors import (
    CurrentYearDeletionForbidden,
    YearNotFound,
    storage_step,
)
from dhims.domains.academic_year.validator import YearValidator
from dhims.infrastructure.database.store import RecordStore
from dhims.models.academic_year import (
    AcademicYear,
    AcademicYearCreateRequest,
    AcademicYearUpdateRequest,
    NewYearDestination,
)

logger = logging.getLogger(__name__)

TABLE = "academic_years"


class AcademicYearRepository:
    """Store-backed access to academic year records.

    Attributes:
        store: Record store.
        validator: Validator applied on create and update.
        audit: Optional audit trail.
    """

    def __init__(
        self,
        store: RecordStore,
        validator: YearValidator,
        audit: AuditTrail | None = None,
    ) -> None:
        self.store = store
        self.validator = validator
        self.audit = audit

    async def create(
        self,
        request: AcademicYearCreateRequest | NewYearDestination,
    ) -> AcademicYear:
        """Create an academic year record, never as current.

        Args:
            request: Name and dates of the new year.

        Returns:
            The created academic year.

        Raises:
            ValidationError: If the name or dates are invalid or the name is taken.
            StorageError: If the backend fails.
        """
        conflicting = await self.find_by_name(request.year_name)
        self.validator.validate(
            request.year_name,
            request.start_date,
            request.end_date,
            conflicting=conflicting,
        ).raise_for_issues()

        row = {
            "year_name": request.year_name,
            "start_date": request.start_date,
            "end_date": request.end_date,
            "is_current": False,
            "created_by": getattr(request, "created_by", None),
        }
        with storage_step("create_year"):
            inserted = await self.store.insert(TABLE, [row])
        academic_year = AcademicYear.from_row(inserted[0])

        logger.info("Created academic year: %s (%s)", academic_year.year_name, academic_year.id)
        if self.audit:
            await self.audit.record(
                AuditAction.CREATE,
                "academic_year",
                academic_year.id,
                f"Created academic year {academic_year.year_name}",
            )
        return academic_year

    async def update(self, year_id: str, request: AcademicYearUpdateRequest) -> AcademicYear:
        """Update an academic year's name and/or dates.

        Raises:
            YearNotFound: If the year does not exist.
            ValidationError: If the merged name or dates are invalid.
            StorageError: If the backend fails.
        """
        academic_year = await self.get_by_id(year_id)

        new_name = request.year_name if request.year_name is not None else academic_year.year_name
        new_start = request.start_date or academic_year.start_date
        new_end = request.end_date or academic_year.end_date

        conflicting = None
        if new_name != academic_year.year_name:
            conflicting = await self.find_by_name(new_name)
        self.validator.validate(
            new_name,
            new_start,
            new_end,
            conflicting=conflicting,
            updating_id=academic_year.id,
        ).raise_for_issues()

        patch = request.model_dump(exclude_none=True)
        if patch:
            with storage_step("update_year"):
                updated = await self.store.update(TABLE, {"id": year_id}, patch)
            if not updated:
                raise YearNotFound(year_id)

        logger.info("Updated academic year: %s", year_id)
        if self.audit:
            await self.audit.record(
                AuditAction.UPDATE,
                "academic_year",
                year_id,
                f"Updated academic year {new_name}",
            )
        return await self.get_by_id(year_id)

    async def delete(self, year_id: str) -> AcademicYear:
        """Delete an academic year record.

        Only the record is removed; per-year data is left to
        DataRetentionService.

        Returns:
            The deleted record as it was.

        Raises:
            YearNotFound: If the year does not exist.
            CurrentYearDeletionForbidden: If the year is current.
            StorageError: If the backend fails.
        """
        academic_year = await self.get_by_id(year_id)
        if academic_year.is_current:
            raise CurrentYearDeletionForbidden(academic_year.year_name)

        with storage_step("delete_year"):
            # Conditional on is_current so a concurrent switch cannot slip in
            deleted = await self.store.delete(TABLE, {"id": year_id, "is_current": False})
        if not deleted:
            latest = await self.find_by_id(year_id)
            if latest is None:
                raise YearNotFound(year_id)
            raise CurrentYearDeletionForbidden(latest.year_name)

        logger.info("Deleted academic year: %s (%s)", academic_year.year_name, year_id)
        if self.audit:
            await self.audit.record(
                AuditAction.DELETE,
                "academic_year",
                year_id,
                f"Deleted academic year {academic_year.year_name}",
            )
        return academic_year

    async def get_by_id(self, year_id: str) -> AcademicYear:
        """Get an academic year by id.

        Raises:
            YearNotFound: If the year does not exist.
        """
        academic_year = await self.find_by_id(year_id)
        if academic_year is None:
            raise YearNotFound(year_id)
        return academic_year

    async def find_by_id(self, year_id: str) -> AcademicYear | None:
        with storage_step("load_year"):
            rows = await self.store.query(TABLE, {"id": year_id})
        return AcademicYear.from_row(rows[0]) if rows else None

    async def find_by_name(self, year_name: str) -> AcademicYear | None:
        with storage_step("load_year"):
            rows = await self.store.query(TABLE, {"year_name": year_name})
        return AcademicYear.from_row(rows[0]) if rows else None

    async def list_all(self) -> list[AcademicYear]:
        """List all academic years, latest start date first."""
        with storage_step("list_years"):
            rows = await self.store.query(TABLE, order_by=["-start_date"])
        return [AcademicYear.from_row(row) for row in rows]

    async def find_current(self) -> AcademicYear | None:
        """Get the current academic year, or None if none is set."""
        with storage_step("load_current_year"):
            rows = await self.store.query(TABLE, {"is_current": True}, order_by=["-start_date"])
        if not rows:
            return None
        if len(rows) > 1:
            logger.error(
                "Found %d current academic years, using the latest: %s",
                len(rows),
                rows[0]["year_name"],
            )
        return AcademicYear.from_row(rows[0])
