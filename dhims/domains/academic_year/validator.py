# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pure validation of academic year candidates.

No I/O happens here. Uniqueness is decided from the conflicting record
the repository looked up by name, so the check reflects the store rather
than an in-memory list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from dhims.domains.academic_year.errors import (
    ValidationError,
    ValidationIssue,
    ValidationIssueCode,
)
from dhims.models.academic_year import AcademicYear

SINGLE_YEAR_PATTERN = re.compile(r"[0-9]{4}")
RANGE_YEAR_PATTERN = re.compile(r"([0-9]{4})-([0-9]{4})")


@dataclass
class ValidationResult:
    """Outcome of validating one candidate."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def raise_for_issues(self) -> None:
        """Raise ValidationError if any issue was found."""
        if self.issues:
            raise ValidationError(self.issues)


class YearValidator:
    """Validates year name format, date ordering and name uniqueness.

    Attributes:
        year_name_format: "single" (2025) or "range" (2024-2025).
    """

    def __init__(self, year_name_format: Literal["single", "range"] = "single") -> None:
        self.year_name_format = year_name_format

    def validate(
        self,
        year_name: str | None,
        start_date: date | None,
        end_date: date | None,
        *,
        conflicting: AcademicYear | None = None,
        updating_id: str | None = None,
    ) -> ValidationResult:
        """Validate a candidate academic year.

        Args:
            year_name: Proposed year label.
            start_date: First day of the year.
            end_date: Last day of the year.
            conflicting: Existing year with the same name, if the store has one.
            updating_id: Id of the record being updated; it may keep its name.

        Returns:
            ValidationResult listing every issue found.
        """
        issues: list[ValidationIssue] = []

        for name, value in (
            ("year_name", year_name),
            ("start_date", start_date),
            ("end_date", end_date),
        ):
            if value is None or value == "":
                issues.append(
                    ValidationIssue(ValidationIssueCode.MISSING_FIELD, name, f"{name} is required")
                )

        if year_name:
            issue = self.check_name_format(year_name)
            if issue:
                issues.append(issue)
        if start_date and end_date:
            issue = self.check_date_range(start_date, end_date)
            if issue:
                issues.append(issue)
        if year_name:
            issue = self.check_unique(year_name, conflicting, updating_id)
            if issue:
                issues.append(issue)

        return ValidationResult(issues)

    def check_name_format(self, year_name: str) -> ValidationIssue | None:
        if self.year_name_format == "single":
            if SINGLE_YEAR_PATTERN.fullmatch(year_name):
                return None
            message = "Year must be a 4-digit year (e.g. 2024)"
        else:
            match = RANGE_YEAR_PATTERN.fullmatch(year_name)
            if match and int(match.group(2)) == int(match.group(1)) + 1:
                return None
            message = "Year must be a range of consecutive years (e.g. 2024-2025)"
        return ValidationIssue(ValidationIssueCode.INVALID_FORMAT, "year_name", message)

    def check_date_range(self, start_date: date, end_date: date) -> ValidationIssue | None:
        if end_date > start_date:
            return None
        return ValidationIssue(
            ValidationIssueCode.INVALID_DATE_RANGE,
            "end_date",
            "End date must be after start date",
        )

    def check_unique(
        self,
        year_name: str,
        conflicting: AcademicYear | None,
        updating_id: str | None = None,
    ) -> ValidationIssue | None:
        if conflicting is None or conflicting.id == updating_id:
            return None
        return ValidationIssue(
            ValidationIssueCode.DUPLICATE_YEAR_NAME,
            "year_name",
            f"Academic year {year_name} already exists",
        )

    def year_name_for(self, calendar_year: int) -> str:
        """Label of the academic year starting in the given calendar year."""
        if self.year_name_format == "single":
            return str(calendar_year)
        return f"{calendar_year}-{calendar_year + 1}"
