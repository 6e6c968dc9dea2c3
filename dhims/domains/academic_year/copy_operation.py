# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Copying academic year data from one year to another.

A copy is a one-shot operation driven by the caller through these states:

    configuring -> running -> awaiting_grade_promotion -> complete
                      \\-> failed
    configuring -> cancelled

configure() validates everything up front. run() streams one
ProgressUpdate per finished step: the destination year is created first
when requested, then the selected categories are copied in the fixed
order student data, exam templates, sponsorship. A failing step stops
the run with a StorageError naming that step; earlier steps stay
committed and nothing resumes automatically. Once every category is
copied the caller reviews the proposed grade mapping and confirms it to
complete the operation.

Copying is not idempotent: running a category twice inserts its rows
twice.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.errors import (
    AcademicYearServiceError,
    CopyOperationStateError,
    SameYearCopyForbidden,
    storage_step,
)
from dhims.domains.academic_year.grade_promotion import GradePromotionEngine
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.infrastructure.database.store import RecordStore
from dhims.models.academic_year import (
    AcademicYear,
    CopyDestination,
    ExistingYearDestination,
    NewYearDestination,
)
from dhims.models.migration import (
    COPY_ORDER,
    CREATE_YEAR_STEP,
    ApplyResult,
    CopyCategory,
    CopyStatus,
    GradePromotionMapping,
    ProgressUpdate,
)
from dhims.utils.datetime import utc_now
from dhims.utils.logging import bind_context, get_logger, unbind_context

logger = get_logger(__name__)

# Columns regenerated on the copied rows
_REGENERATED = ("id", "created_at", "updated_at")


@dataclass
class CopyOperation:
    """Handle of one copy, alive for a single invocation only.

    Attributes:
        id: Operation id, bound to log context while running.
        source: Year the rows are read from.
        destination: Requested destination.
        categories: Selected categories in execution order.
        status: Current state.
        destination_year: Destination record, set once known or created.
        step_index: Number of finished steps.
        rows_copied: Rows written per step.
        failure: Error that failed the run, if any.
        promotion: Grade promotion outcome once confirmed.
    """

    source: AcademicYear
    destination: CopyDestination
    categories: tuple[CopyCategory, ...]
    id: str = field(default_factory=lambda: str(uuid4()))
    status: CopyStatus = CopyStatus.CONFIGURING
    destination_year: AcademicYear | None = None
    step_index: int = 0
    rows_copied: dict[str, int] = field(default_factory=dict)
    failure: Exception | None = None
    promotion: ApplyResult | None = None

    @property
    def creates_year(self) -> bool:
        return isinstance(self.destination, NewYearDestination)

    @property
    def total_steps(self) -> int:
        return len(self.categories) + (1 if self.creates_year else 0)

    @property
    def failure_reason(self) -> str | None:
        return str(self.failure) if self.failure else None


class CopyOperationEngine:
    """Configures, runs and completes copy operations.

    Attributes:
        repository: Academic year repository.
        promotion: Grade promotion engine used for the final stage.
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

    @property
    def store(self) -> RecordStore:
        return self.repository.store

    async def configure(
        self,
        source_year_id: str,
        destination: CopyDestination,
        categories: Iterable[CopyCategory | str],
    ) -> CopyOperation:
        """Validate a copy request and return its handle.

        Args:
            source_year_id: Year to copy from.
            destination: Existing year or a new year to create.
            categories: Categories to copy, in any order.

        Returns:
            CopyOperation in the configuring state.

        Raises:
            YearNotFound: If the source or existing destination does not exist.
            SameYearCopyForbidden: If the destination is the source.
            ValidationError: If the new year's name or dates are invalid.
        """
        source = await self.repository.get_by_id(source_year_id)
        selected = {CopyCategory(category) for category in categories}
        ordered = tuple(category for category in COPY_ORDER if category in selected)

        operation = CopyOperation(source=source, destination=destination, categories=ordered)

        if isinstance(destination, ExistingYearDestination):
            if destination.year_id == source.id:
                raise SameYearCopyForbidden(source.id)
            operation.destination_year = await self.repository.get_by_id(destination.year_id)
        else:
            conflicting = await self.repository.find_by_name(destination.year_name)
            self.repository.validator.validate(
                destination.year_name,
                destination.start_date,
                destination.end_date,
                conflicting=conflicting,
            ).raise_for_issues()

        logger.info(
            "Copy operation configured",
            operation_id=operation.id,
            source=source.year_name,
            categories=[category.value for category in ordered],
        )
        return operation

    def cancel(self, operation: CopyOperation) -> CopyOperation:
        """Cancel a copy that has not started running.

        Raises:
            CopyOperationStateError: If the operation is past configuring.
        """
        self._require(operation, CopyStatus.CONFIGURING, "cancel")
        operation.status = CopyStatus.CANCELLED
        logger.info("Copy operation cancelled", operation_id=operation.id)
        return operation

    async def run(self, operation: CopyOperation) -> AsyncIterator[ProgressUpdate]:
        """Execute the copy, yielding a ProgressUpdate after each step.

        The operation is awaiting grade promotion by the time the last
        update is yielded, so a consumer may stop reading there.

        Raises:
            CopyOperationStateError: If the operation is not configuring.
            StorageError: If a step fails; the operation becomes failed and
                earlier steps stay committed.
            ValidationError: If the new destination year became invalid
                since configure() (e.g. its name was taken meanwhile).
        """
        self._require(operation, CopyStatus.CONFIGURING, "run")
        operation.status = CopyStatus.RUNNING
        bind_context(operation_id=operation.id)
        logger.info("Copy operation started", total_steps=operation.total_steps)

        try:
            if isinstance(operation.destination, NewYearDestination):
                operation.destination_year = await self.repository.create(operation.destination)
                yield await self._step_done(operation, CREATE_YEAR_STEP, 1)

            for category in operation.categories:
                logger.info("Copy step started", step=category.value)
                with storage_step(category.value):
                    rows = await self._copy_category(category, operation)
                yield await self._step_done(operation, category.value, rows)

            if operation.status == CopyStatus.RUNNING:
                await self._finish_copy(operation)
        except AcademicYearServiceError as e:
            operation.status = CopyStatus.FAILED
            operation.failure = e
            logger.error("Copy operation failed", error=str(e), completed=operation.rows_copied)
            raise
        except GeneratorExit:
            if operation.status == CopyStatus.RUNNING:
                operation.status = CopyStatus.FAILED
                operation.failure = CopyOperationStateError(
                    "Progress stream closed before the copy finished"
                )
            raise
        finally:
            unbind_context("operation_id")

    async def run_to_completion(self, operation: CopyOperation) -> list[ProgressUpdate]:
        """Run the copy and collect every progress update."""
        return [update async for update in self.run(operation)]

    async def propose_grade_mapping(self, operation: CopyOperation) -> GradePromotionMapping:
        """Default grade mapping over the destination year's students.

        Raises:
            CopyOperationStateError: If the copy has not finished copying.
        """
        self._require(operation, CopyStatus.AWAITING_GRADE_PROMOTION, "propose a grade mapping")
        return await self.promotion.propose_default_mapping(self._promotion_scope(operation))

    async def confirm_grade_promotion(
        self,
        operation: CopyOperation,
        mapping: GradePromotionMapping,
    ) -> ApplyResult:
        """Apply the reviewed mapping and complete the operation.

        The mapping is always applied to the destination year's students.
        Per-entry failures are reported in the result and still complete
        the operation.

        Raises:
            CopyOperationStateError: If the copy has not finished copying.
            StorageError: If the destination students cannot be read.
            IncompleteMappingError: If the mapping misses a label held by
                the destination year's active students.
                The operation stays awaiting grade promotion.
        """
        self._require(operation, CopyStatus.AWAITING_GRADE_PROMOTION, "confirm grade promotion")
        scope = self._promotion_scope(operation)
        # Labels in the destination now, whatever the mapping was built from
        observed = await self.promotion.observe_labels(scope)
        scoped = mapping.model_copy(update={"scope": scope, "observed_labels": observed})
        result = await self.promotion.apply_mapping(scoped)

        operation.promotion = result
        operation.status = CopyStatus.COMPLETE
        logger.info(
            "Copy operation complete",
            operation_id=operation.id,
            promoted=result.succeeded,
            failed=result.failed_labels,
        )
        return result

    async def _copy_category(self, category: CopyCategory, operation: CopyOperation) -> int:
        source_name = operation.source.year_name
        destination_name = operation.destination_year.year_name

        if category is CopyCategory.STUDENT_DATA:
            return await self._copy_rows(
                "students",
                "academic_year_recorded",
                source_name,
                destination_name,
                # Sponsorship links travel with the sponsorship category
                extra={"sponsor_id": None, "sponsored_since": None},
            )
        if category is CopyCategory.EXAM_TEMPLATES:
            return await self._copy_rows("exams", "academic_year", source_name, destination_name)
        return await self._copy_sponsorships(source_name, destination_name)

    async def _copy_rows(
        self,
        table: str,
        year_column: str,
        source_name: str,
        destination_name: str,
        extra: dict[str, Any] | None = None,
    ) -> int:
        rows = await self.store.query(table, {year_column: source_name})
        if not rows:
            return 0
        now = utc_now()
        copies = []
        for row in rows:
            copy = {key: value for key, value in row.items() if key not in _REGENERATED}
            copy.update(extra or {})
            copy[year_column] = destination_name
            copy["created_at"] = now
            copy["updated_at"] = now
            copies.append(copy)
        inserted = await self.store.insert(table, copies)
        return len(inserted)

    async def _copy_sponsorships(self, source_name: str, destination_name: str) -> int:
        students = await self.store.query(
            "students",
            {"academic_year_recorded": source_name},
            columns=["admission_number", "sponsor_id", "sponsored_since"],
        )
        linked = 0
        for student in students:
            if not student.get("sponsor_id"):
                continue
            linked += await self.store.update(
                "students",
                {
                    "academic_year_recorded": destination_name,
                    "admission_number": student["admission_number"],
                },
                {
                    "sponsor_id": student["sponsor_id"],
                    "sponsored_since": student.get("sponsored_since"),
                },
            )
        return linked

    async def _step_done(self, operation: CopyOperation, step: str, rows: int) -> ProgressUpdate:
        operation.step_index += 1
        operation.rows_copied[step] = rows
        logger.info("Copy step finished", step=step, rows=rows, step_index=operation.step_index)
        # The last update already reports the state the copy settled in
        if operation.step_index == operation.total_steps:
            await self._finish_copy(operation)
        return ProgressUpdate(
            operation_id=operation.id,
            step=step,
            step_index=operation.step_index,
            total_steps=operation.total_steps,
            rows_affected=rows,
            status=operation.status,
        )

    async def _finish_copy(self, operation: CopyOperation) -> None:
        operation.status = CopyStatus.AWAITING_GRADE_PROMOTION
        await self._record_copy(operation)
        logger.info("Copy operation awaiting grade promotion", rows=operation.rows_copied)

    async def _record_copy(self, operation: CopyOperation) -> None:
        if not self.audit:
            return
        selected = ", ".join(category.value for category in operation.categories) or "none"
        copied = sum(
            rows for step, rows in operation.rows_copied.items() if step != CREATE_YEAR_STEP
        )
        await self.audit.record(
            AuditAction.DATA_COPY,
            "academic_year",
            operation.destination_year.id,
            f"Copied data from {operation.source.year_name} to "
            f"{operation.destination_year.year_name}. Items copied: {copied}. "
            f"Categories: {selected}",
        )

    def _promotion_scope(self, operation: CopyOperation) -> dict[str, Any]:
        return {"academic_year_recorded": operation.destination_year.year_name}

    def _require(self, operation: CopyOperation, status: CopyStatus, action: str) -> None:
        if operation.status != status:
            raise CopyOperationStateError(
                f"Cannot {action} a copy operation that is {operation.status.value}"
            )
