# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Grade promotion engine.

Computes a mapping from every grade label in use to its successor and
applies it as one bulk update per label:

- "Grade n" maps to "Grade n+1"
- the highest numeric grade (and anything above it) maps to the
  terminal label, "Alumni" by default
- any other label maps to itself unless the caller overrides it

Application order matters because targets are also sources: applying
"Grade 10 -> Grade 11" before "Grade 11 -> Grade 12" would promote the
Grade 10 students twice. Entries are therefore applied so that a label
is emptied before anything is moved into it, and cycles created by
overrides are broken by parking one group under a staging label unique
to the application.

Each entry is its own update. A failing entry is reported and the
others carry on, except entries that would move students into a label
still holding the failed group; those are held back so the two groups
are never merged. Failures name the label their students hold now, so
ApplyResult.remaining() retries each group from where it is.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

from dhims.core.config.settings import AcademicYearSettings
from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.errors import IncompleteMappingError, storage_step
from dhims.infrastructure.database.connection import DatabaseError
from dhims.infrastructure.database.store import RecordStore
from dhims.models.migration import ApplyResult, EntryFailure, GradePromotionMapping

logger = logging.getLogger(__name__)

STAGING_PREFIX = "__promoting__:"


class GradePromotionEngine:
    """Computes and applies grade promotion mappings.

    Attributes:
        store: Record store holding students.
        settings: Grade label conventions.
        audit: Optional audit trail.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: AcademicYearSettings | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or AcademicYearSettings()
        self.audit = audit
        self._grade_pattern = re.compile(
            rf"^{re.escape(self.settings.grade_label_prefix)}\s+(\d+)$"
        )

    def grade_number(self, label: str) -> int | None:
        """Numeric grade of a "Grade n" label, None for other labels."""
        match = self._grade_pattern.match(label.strip())
        return int(match.group(1)) if match else None

    def sort_labels(self, labels: Iterable[str]) -> list[str]:
        """Numeric grades in ascending order, then other labels alphabetically."""

        def key(label: str) -> tuple[int, int, str]:
            number = self.grade_number(label)
            return (0, number, label) if number is not None else (1, 0, label)

        return sorted(set(labels), key=key)

    def compute_default_mapping(
        self,
        distinct_labels: Iterable[str],
        max_numeric_grade: int | None = None,
        scope: dict[str, Any] | None = None,
    ) -> GradePromotionMapping:
        """Build the default successor mapping for the given labels.

        Args:
            distinct_labels: Grade labels currently in use.
            max_numeric_grade: Highest numeric grade; defaults to settings.
            scope: Student filters the labels were observed under.

        Returns:
            Mapping with one entry per label.

        Example:
            >>> engine.compute_default_mapping(["Grade 11", "Grade 12"]).entries
            {'Grade 11': 'Grade 12', 'Grade 12': 'Alumni'}
        """
        max_grade = max_numeric_grade or self.settings.max_numeric_grade
        labels = self.sort_labels(distinct_labels)
        entries: dict[str, str] = {}
        for label in labels:
            number = self.grade_number(label)
            if number is None:
                entries[label] = label
            elif number >= max_grade:
                entries[label] = self.settings.terminal_grade_label
            else:
                entries[label] = f"{self.settings.grade_label_prefix} {number + 1}"

        return GradePromotionMapping(
            entries=entries,
            observed_labels=labels,
            scope=dict(scope or {}),
        )

    async def observe_labels(self, scope: dict[str, Any] | None = None) -> list[str]:
        """Distinct grade labels among active students.

        Raises:
            StorageError: If the students cannot be read.
        """
        filters = {"status": self.settings.active_student_status, **(scope or {})}
        with storage_step("observe_grades"):
            rows = await self.store.query("students", filters, columns=["current_grade"])
        return self.sort_labels(row["current_grade"] for row in rows if row.get("current_grade"))

    async def propose_default_mapping(
        self,
        scope: dict[str, Any] | None = None,
    ) -> GradePromotionMapping:
        """Observe the labels in use and compute their default mapping."""
        labels = await self.observe_labels(scope)
        return self.compute_default_mapping(labels, scope=scope)

    async def apply_mapping(self, mapping: GradePromotionMapping) -> ApplyResult:
        """Move students from each source label to its target label.

        A group parked under a staging label whose final move fails stays
        there: its own label already holds the group that moved in, so it
        is reported with the staging label as `source` and
        `ApplyResult.remaining()` picks it up from there.

        Args:
            mapping: Mapping covering every observed label.

        Returns:
            Per-entry outcome: succeeded, failed with error, or unchanged.

        Raises:
            IncompleteMappingError: If an observed label has no entry. Raised
                before any update is issued.
        """
        missing = mapping.missing_labels()
        if missing:
            raise IncompleteMappingError(missing)

        result = ApplyResult(
            unchanged=[src for src, tgt in mapping.entries.items() if src == tgt],
        )
        filters = {"status": self.settings.active_student_status, **mapping.scope}
        stuck_labels: set[str] = set()
        failed: dict[str, EntryFailure] = {}

        for owner, from_label, to_label in self._plan(mapping.changes()):
            if owner in failed:
                continue
            target = mapping.entries[owner]

            if to_label in stuck_labels:
                failed[owner] = EntryFailure(
                    label=owner,
                    target=target,
                    source=from_label,
                    held_back=True,
                    error=f"held back: {to_label} still holds students whose promotion failed",
                )
                stuck_labels.add(from_label)
                logger.warning("Grade promotion %s -> %s held back", owner, target)
                continue

            try:
                updated = await self.store.update(
                    "students",
                    {**filters, "current_grade": from_label},
                    {"current_grade": to_label},
                )
            except DatabaseError as e:
                failed[owner] = EntryFailure(
                    label=owner, target=target, source=from_label, error=str(e)
                )
                stuck_labels.add(from_label)
                if from_label != owner:
                    logger.error(
                        "Grade promotion %s -> %s failed, students left under %s: %s",
                        owner, target, from_label, e,
                    )
                else:
                    logger.error("Grade promotion %s -> %s failed: %s", owner, target, e)
                continue

            if from_label == owner:
                result.rows_updated[owner] = updated
            if to_label == target:
                result.succeeded.append(owner)
                logger.info(
                    "Promoted %d students from %s to %s",
                    result.rows_updated.get(owner, updated),
                    owner,
                    target,
                )

        result.failed = list(failed.values())

        if self.audit:
            await self.audit.record(
                AuditAction.GRADE_PROMOTION,
                "students",
                None,
                f"Promoted student grades: {len(result.succeeded)} succeeded, "
                f"{len(result.failed)} failed",
            )
        return result

    def _plan(self, changes: dict[str, str]) -> list[tuple[str, str, str]]:
        """Order the updates so no student moves twice.

        Returns:
            Steps of (entry label, from label, to label).
        """
        pending = dict(changes)
        run = uuid4().hex[:8]
        owners = {label: label for label in pending}
        steps: list[tuple[str, str, str]] = []

        while pending:
            sources = set(pending)
            ready = [src for src, tgt in pending.items() if tgt not in sources]
            if ready:
                for src in ready:
                    steps.append((owners[src], src, pending.pop(src)))
                continue

            # Only cycles remain: park one group under a staging label
            src = next(iter(pending))
            staging = f"{STAGING_PREFIX}{owners[src]}:{run}"
            steps.append((owners[src], src, staging))
            pending[staging] = pending.pop(src)
            owners[staging] = owners[src]

        return steps
