# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for year transitions and data migration.

This module defines Pydantic models and enums for:
- Copy categories and copy operation status
- Progress updates streamed while a copy runs
- Grade promotion mappings and their per-entry outcomes
- Per-table outcomes of year data deletion
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CopyCategory(str, Enum):
    """Independently selectable groups of records copied between years."""

    STUDENT_DATA = "student_data"
    EXAM_TEMPLATES = "exam_templates"
    SPONSORSHIP = "sponsorship"


# Categories always run in this order regardless of selection order
COPY_ORDER: tuple[CopyCategory, ...] = (
    CopyCategory.STUDENT_DATA,
    CopyCategory.EXAM_TEMPLATES,
    CopyCategory.SPONSORSHIP,
)


class CopyStatus(str, Enum):
    """Copy operation lifecycle.

    - CONFIGURING: Inputs validated, nothing written yet; may be cancelled
    - RUNNING: Steps are being executed
    - AWAITING_GRADE_PROMOTION: All categories copied, mapping not yet applied
    - COMPLETE: Grade promotion applied (possibly with per-label failures)
    - FAILED: A step failed; earlier steps stay committed
    - CANCELLED: Cancelled before running
    """

    CONFIGURING = "configuring"
    RUNNING = "running"
    AWAITING_GRADE_PROMOTION = "awaiting_grade_promotion"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


CREATE_YEAR_STEP = "create_year"


class ProgressUpdate(BaseModel):
    """One completed step of a running copy operation."""

    operation_id: str
    step: str = Field(..., description="create_year or a copy category value")
    step_index: int = Field(..., ge=1)
    total_steps: int = Field(..., ge=0)
    rows_affected: int = 0
    status: CopyStatus = CopyStatus.RUNNING

    @property
    def percent(self) -> int:
        """Completion percentage of the copy steps."""
        if not self.total_steps:
            return 100
        return round(self.step_index * 100 / self.total_steps)


class GradePromotionMapping(BaseModel):
    """Target grade label for every grade label observed among students.

    Attributes:
        entries: Source label to target label.
        observed_labels: Labels present when the mapping was computed; each
            must have an entry before the mapping can be applied.
        scope: Extra student filters the mapping was observed under and is
            applied under (e.g. one academic year's records).
    """

    entries: dict[str, str] = Field(default_factory=dict)
    observed_labels: list[str] = Field(default_factory=list)
    scope: dict[str, Any] = Field(default_factory=dict)

    def override(self, label: str, target: str) -> "GradePromotionMapping":
        """Set the target for one label. Returns self for chaining."""
        self.entries[label] = target
        return self

    def missing_labels(self) -> list[str]:
        """Observed labels that have no entry."""
        return [label for label in self.observed_labels if label not in self.entries]

    def changes(self) -> dict[str, str]:
        """Entries that actually move students to a different label."""
        return {src: tgt for src, tgt in self.entries.items() if src != tgt}


class EntryFailure(BaseModel):
    """A mapping entry whose students did not reach their target label.

    Attributes:
        label: Mapping entry that failed.
        target: Label the entry moves students to.
        error: Failure message.
        source: Label the students hold now. Differs from `label` when
            the group was left under a staging label.
        held_back: The update was not attempted because its target label
            still holds a group whose own move failed.
    """

    label: str
    target: str
    error: str
    source: str | None = None
    held_back: bool = False

    @property
    def current_label(self) -> str:
        return self.source or self.label


class ApplyResult(BaseModel):
    """Per-entry outcome of applying a grade promotion mapping."""

    succeeded: list[str] = Field(default_factory=list)
    failed: list[EntryFailure] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    rows_updated: dict[str, int] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        """True when no entry failed."""
        return not self.failed

    @property
    def failed_labels(self) -> list[str]:
        return [failure.label for failure in self.failed]

    @property
    def held_back_labels(self) -> list[str]:
        """Failed entries that were never attempted."""
        return [failure.label for failure in self.failed if failure.held_back]

    def remaining(self, scope: dict[str, Any] | None = None) -> GradePromotionMapping:
        """Mapping that retries every failed entry from where its students are now.

        Args:
            scope: Student filters the original mapping was applied under.
        """
        entries = {failure.current_label: failure.target for failure in self.failed}
        return GradePromotionMapping(
            entries=entries,
            observed_labels=list(entries),
            scope=dict(scope or {}),
        )


class DeletionResult(BaseModel):
    """Per-table outcome of deleting one year's transactional data."""

    year_name: str
    deleted: dict[str, int] = Field(default_factory=dict)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        """True when every table was cleared."""
        return not self.failed
