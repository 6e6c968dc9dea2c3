# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Irreversible deletion of one academic year's transactional data.

This is separate from the academic year record lifecycle: deleting a
record keeps its data, and deleting data works by year name whether or
not a record with that name still exists. Tables are cleared one by one;
a failure leaves the earlier tables cleared and is reported per table.
Clearing an already empty scope succeeds, so a partial run can simply
be repeated.
"""

from __future__ import annotations

import logging

from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.errors import CurrentYearDataProtected
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.infrastructure.database.connection import DatabaseError
from dhims.infrastructure.database.tables import YEAR_SCOPE_COLUMNS
from dhims.models.migration import DeletionResult

logger = logging.getLogger(__name__)

YEAR_DATA_TABLES: tuple[str, ...] = (
    "student_exam_scores",
    "student_photos",
    "student_letters",
    "timeline_events",
)


class DataRetentionService:
    """Deletes per-year transactional data by year name."""

    def __init__(
        self,
        repository: AcademicYearRepository,
        audit: AuditTrail | None = None,
    ) -> None:
        self.repository = repository
        self.audit = audit

    async def delete_year_data(self, year_name: str) -> DeletionResult:
        """Delete exam scores, photos, letters and timeline events of a year.

        Args:
            year_name: Year label the rows are recorded under.

        Returns:
            DeletionResult with rows deleted per table and per-table errors.

        Raises:
            CurrentYearDataProtected: If year_name is the current year.
            StorageError: If the current year cannot be determined.
        """
        current = await self.repository.find_current()
        if current is not None and current.year_name == year_name:
            raise CurrentYearDataProtected(year_name)

        result = DeletionResult(year_name=year_name)
        for table in YEAR_DATA_TABLES:
            try:
                deleted = await self.repository.store.delete(
                    table, {YEAR_SCOPE_COLUMNS[table]: year_name}
                )
            except DatabaseError as e:
                result.failed[table] = str(e)
                logger.error("Failed to delete %s rows for %s: %s", table, year_name, e)
                continue
            result.deleted[table] = deleted
            logger.info("Deleted %d %s rows for %s", deleted, table, year_name)

        if self.audit:
            await self.audit.record(
                AuditAction.ACADEMIC_DATA_WIPE,
                "academic_year",
                year_name,
                f"Deleted academic year data for {year_name}: "
                f"{sum(result.deleted.values())} rows, {len(result.failed)} tables failed",
            )
        return result
