# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the academic year engine.

Validation and precondition errors are raised before anything is
written, so they are safe to retry after correcting the input.
StorageError always names the step that was running when the backend
failed; steps before it stay committed.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from dhims.infrastructure.database.connection import DatabaseError

if TYPE_CHECKING:
    from dhims.models.migration import ApplyResult, GradePromotionMapping


class AcademicYearServiceError(Exception):
    """Base exception for academic year engine errors."""

    pass


class ValidationIssueCode(str, Enum):
    """Why an academic year candidate was rejected."""

    INVALID_FORMAT = "invalid_format"
    INVALID_DATE_RANGE = "invalid_date_range"
    DUPLICATE_YEAR_NAME = "duplicate_year_name"
    MISSING_FIELD = "missing_field"


@dataclass(frozen=True)
class ValidationIssue:
    """One rejected field of an academic year candidate."""

    code: ValidationIssueCode
    field: str
    message: str


class ValidationError(AcademicYearServiceError):
    """Raised when year name format, date order or uniqueness is violated.

    Attributes:
        issues: Every problem found, not just the first.
    """

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(issue.message for issue in self.issues) or "Invalid input")

    @property
    def codes(self) -> set[ValidationIssueCode]:
        return {issue.code for issue in self.issues}


class YearNotFound(AcademicYearServiceError):
    """Raised when an academic year does not exist."""

    def __init__(self, year_id: str) -> None:
        self.year_id = year_id
        super().__init__(f"Academic year {year_id} not found")


class CurrentYearDeletionForbidden(AcademicYearServiceError):
    """Raised when deleting the record of the current academic year."""

    def __init__(self, year_name: str) -> None:
        self.year_name = year_name
        super().__init__(f"Academic year {year_name} is current and cannot be deleted")


class CurrentYearDataProtected(AcademicYearServiceError):
    """Raised when deleting the transactional data of the current year."""

    def __init__(self, year_name: str) -> None:
        self.year_name = year_name
        super().__init__(f"Data of the current academic year {year_name} cannot be deleted")


class SameYearCopyForbidden(AcademicYearServiceError):
    """Raised when a copy's destination is its own source year."""

    def __init__(self, year_id: str) -> None:
        self.year_id = year_id
        super().__init__("Source and destination academic years must differ")


class StorageError(AcademicYearServiceError):
    """Backend failure, tagged with the step in progress.

    Attributes:
        step: Operation step that was running (e.g. "swap_current",
            "student_data", "load_year").
        original_error: The underlying database error.
    """

    def __init__(self, step: str, original_error: Exception) -> None:
        self.step = step
        self.original_error = original_error
        super().__init__(f"Storage failure during {step}: {original_error}")


class IncompleteMappingError(AcademicYearServiceError):
    """Raised when a grade mapping lacks an entry for an observed label.

    Attributes:
        missing_labels: Observed labels without a target.
    """

    def __init__(self, missing_labels: list[str]) -> None:
        self.missing_labels = list(missing_labels)
        super().__init__(
            "Grade promotion mapping has no target for: " + ", ".join(self.missing_labels)
        )


class GradePromotionIncomplete(AcademicYearServiceError):
    """Current year switched but grade promotion did not fully apply.

    The year switch is not rolled back. Re-apply `remaining` to retry
    only the entries that did not go through.

    Attributes:
        result: Per-entry outcome, None if promotion failed before any update.
        remaining: Mapping of the entries still to apply, None if the
            mapping could not be computed.
        cause: Error that prevented computing the mapping, if any.
    """

    def __init__(
        self,
        result: ApplyResult | None = None,
        remaining: GradePromotionMapping | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.result = result
        self.remaining = remaining
        self.cause = cause
        if cause is not None:
            message = f"Grade promotion did not run: {cause}"
        elif result is not None:
            message = "Grade promotion failed for: " + ", ".join(result.failed_labels)
        else:
            message = "Grade promotion incomplete"
        super().__init__(message)


class CopyOperationStateError(AcademicYearServiceError):
    """Raised when a copy operation call does not fit its current status."""

    pass


@contextmanager
def storage_step(step: str) -> Iterator[None]:
    """Re-raise database errors inside the block as StorageError for `step`."""
    try:
        yield
    except DatabaseError as e:
        raise StorageError(step, e) from e
