# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the grade promotion engine."""

import pytest

from dhims.core.config.settings import AcademicYearSettings
from dhims.domains.academic_year.audit import AuditAction
from dhims.domains.academic_year.errors import IncompleteMappingError, StorageError
from dhims.domains.academic_year.grade_promotion import STAGING_PREFIX, GradePromotionEngine
from dhims.models.migration import GradePromotionMapping


def grade_of(store, admission_number):
    return store.rows("students", admission_number=admission_number)[0]["current_grade"]


def failing_label(label):
    return lambda filters: filters is not None and filters.get("current_grade") == label


class TestDefaultMapping:
    """Tests for computing the default mapping."""

    def test_full_grade_range(self, promotion):
        """Test Grade 1..12 each map to their successor and 12 to Alumni."""
        labels = [f"Grade {n}" for n in range(12, 0, -1)]

        mapping = promotion.compute_default_mapping(labels)

        assert set(mapping.entries) == set(labels)
        for n in range(1, 12):
            assert mapping.entries[f"Grade {n}"] == f"Grade {n + 1}"
        assert mapping.entries["Grade 12"] == "Alumni"
        assert mapping.missing_labels() == []

    def test_observed_labels_sorted_numerically(self, promotion):
        mapping = promotion.compute_default_mapping(["Grade 10", "Grade 2", "Grade 1"])

        assert mapping.observed_labels == ["Grade 1", "Grade 2", "Grade 10"]

    def test_non_numeric_labels_map_to_themselves(self, promotion):
        """Test unknown labels are kept unless overridden."""
        mapping = promotion.compute_default_mapping(["Kindergarten", "Grade 1"])

        assert mapping.entries["Kindergarten"] == "Kindergarten"
        assert mapping.changes() == {"Grade 1": "Grade 2"}

    def test_labels_above_max_go_to_terminal(self, promotion):
        mapping = promotion.compute_default_mapping(["Grade 13"])

        assert mapping.entries == {"Grade 13": "Alumni"}

    def test_custom_max_grade(self, promotion):
        mapping = promotion.compute_default_mapping(["Grade 7", "Grade 8"], max_numeric_grade=8)

        assert mapping.entries == {"Grade 7": "Grade 8", "Grade 8": "Alumni"}

    def test_custom_conventions(self, store):
        """Test prefix and terminal label come from settings."""
        engine = GradePromotionEngine(
            store,
            AcademicYearSettings(
                grade_label_prefix="Class",
                max_numeric_grade=8,
                terminal_grade_label="Graduated",
            ),
        )

        mapping = engine.compute_default_mapping(["Class 7", "Class 8", "Grade 3"])

        assert mapping.entries == {
            "Class 7": "Class 8",
            "Class 8": "Graduated",
            "Grade 3": "Grade 3",
        }

    def test_grade_number(self, promotion):
        assert promotion.grade_number("Grade 4") == 4
        assert promotion.grade_number(" Grade 11 ") == 11
        assert promotion.grade_number("Alumni") is None
        assert promotion.grade_number("Grade Four") is None


class TestObserveLabels:
    """Tests for reading the grade labels in use."""

    @pytest.mark.asyncio
    async def test_only_active_students(self, promotion, store):
        store.add_student("A1", "Grade 3", "2024")
        store.add_student("A2", "Grade 5", "2024", status="graduated")
        store.add_student("A3", "Grade 3", "2025")

        labels = await promotion.observe_labels()

        assert labels == ["Grade 3"]

    @pytest.mark.asyncio
    async def test_scoped_to_year(self, promotion, store):
        store.add_student("A1", "Grade 3", "2024")
        store.add_student("A2", "Grade 4", "2025")

        labels = await promotion.observe_labels({"academic_year_recorded": "2025"})

        assert labels == ["Grade 4"]

    @pytest.mark.asyncio
    async def test_read_failure(self, promotion, store):
        store.fail_on("query", "students")

        with pytest.raises(StorageError) as exc_info:
            await promotion.propose_default_mapping()

        assert exc_info.value.step == "observe_grades"


class TestApplyMapping:
    """Tests for applying a mapping."""

    @pytest.mark.asyncio
    async def test_chain_promotes_each_student_once(self, promotion, store):
        """Test consecutive grades move exactly one step each."""
        for n in range(1, 13):
            store.add_student(f"A{n}", f"Grade {n}", "2025")

        mapping = await promotion.propose_default_mapping()
        result = await promotion.apply_mapping(mapping)

        assert result.is_complete
        assert sorted(result.succeeded) == sorted(f"Grade {n}" for n in range(1, 13))
        for n in range(1, 12):
            assert grade_of(store, f"A{n}") == f"Grade {n + 1}"
        assert grade_of(store, "A12") == "Alumni"
        assert all(count == 1 for count in result.rows_updated.values())

    @pytest.mark.asyncio
    async def test_inactive_students_untouched(self, promotion, store):
        store.add_student("A1", "Grade 3", "2025")
        store.add_student("A2", "Grade 3", "2025", status="graduated")

        await promotion.apply_mapping(await promotion.propose_default_mapping())

        assert grade_of(store, "A1") == "Grade 4"
        assert grade_of(store, "A2") == "Grade 3"

    @pytest.mark.asyncio
    async def test_override(self, promotion, store):
        """Test a caller override replaces the default target."""
        store.add_student("A1", "Grade 3", "2025")

        mapping = await promotion.propose_default_mapping()
        mapping.override("Grade 3", "Grade 3")
        result = await promotion.apply_mapping(mapping)

        assert grade_of(store, "A1") == "Grade 3"
        assert result.unchanged == ["Grade 3"]
        assert result.succeeded == []
        assert store.ops("update", "students") == []

    @pytest.mark.asyncio
    async def test_swap_cycle(self, promotion, store):
        """Test a two-label cycle swaps the groups via a staging label."""
        store.add_student("A1", "Grade 1", "2025")
        store.add_student("A2", "Grade 2", "2025")
        mapping = GradePromotionMapping(
            entries={"Grade 1": "Grade 2", "Grade 2": "Grade 1"},
            observed_labels=["Grade 1", "Grade 2"],
        )

        result = await promotion.apply_mapping(mapping)

        assert result.is_complete
        assert grade_of(store, "A1") == "Grade 2"
        assert grade_of(store, "A2") == "Grade 1"
        assert not any(
            row["current_grade"].startswith(STAGING_PREFIX) for row in store.rows("students")
        )

    @pytest.mark.asyncio
    async def test_failed_move_out_of_staging_retried_from_staging(self, promotion, store):
        """Test a group stranded under its staging label is neither lost nor moved twice."""
        store.add_student("A1", "Grade 1", "2025")
        store.add_student("A2", "Grade 2", "2025")
        store.fail_on(
            "update",
            "students",
            when=lambda filters: str((filters or {}).get("current_grade")).startswith(
                STAGING_PREFIX
            ),
            times=1,
        )
        mapping = GradePromotionMapping(
            entries={"Grade 1": "Grade 2", "Grade 2": "Grade 1"},
            observed_labels=["Grade 1", "Grade 2"],
        )

        first = await promotion.apply_mapping(mapping)

        assert first.failed_labels == ["Grade 1"]
        assert first.succeeded == ["Grade 2"]
        staged = first.failed[0].source
        assert staged.startswith(STAGING_PREFIX)
        assert grade_of(store, "A1") == staged
        assert grade_of(store, "A2") == "Grade 1"

        remaining = first.remaining(mapping.scope)
        assert remaining.entries == {staged: "Grade 2"}

        second = await promotion.apply_mapping(remaining)

        assert second.is_complete
        assert grade_of(store, "A1") == "Grade 2"
        assert grade_of(store, "A2") == "Grade 1"

    @pytest.mark.asyncio
    async def test_staging_labels_unique_per_application(self, promotion, store):
        """Test a new swap never parks students under a label left by an earlier one."""
        store.add_student("A1", "Grade 1", "2025")
        store.add_student("A2", "Grade 2", "2025")
        store.fail_on(
            "update",
            "students",
            when=lambda filters: str((filters or {}).get("current_grade")).startswith(
                STAGING_PREFIX
            ),
        )
        mapping = GradePromotionMapping(
            entries={"Grade 1": "Grade 2", "Grade 2": "Grade 1"},
            observed_labels=["Grade 1", "Grade 2"],
        )

        first = await promotion.apply_mapping(mapping)
        second = await promotion.apply_mapping(mapping)

        assert first.failed[0].source != second.failed[0].source
        assert grade_of(store, "A1") == first.failed[0].source

    @pytest.mark.asyncio
    async def test_incomplete_mapping_rejected_before_writes(self, promotion, store):
        store.add_student("A1", "Grade 1", "2025")
        mapping = GradePromotionMapping(
            entries={"Grade 1": "Grade 2"},
            observed_labels=["Grade 1", "Grade 2"],
        )

        with pytest.raises(IncompleteMappingError) as exc_info:
            await promotion.apply_mapping(mapping)

        assert exc_info.value.missing_labels == ["Grade 2"]
        assert store.ops("update", "students") == []
        assert grade_of(store, "A1") == "Grade 1"

    @pytest.mark.asyncio
    async def test_partial_failure_reported_per_entry(self, promotion, store):
        """Test one failing entry leaves the others applied."""
        store.add_student("A1", "Grade 3", "2025")
        store.add_student("A2", "Grade 7", "2025")
        store.fail_on("update", "students", when=failing_label("Grade 3"))

        result = await promotion.apply_mapping(await promotion.propose_default_mapping())

        assert not result.is_complete
        assert result.failed_labels == ["Grade 3"]
        assert result.failed[0].target == "Grade 4"
        assert "Injected" in result.failed[0].error
        assert result.succeeded == ["Grade 7"]
        # Read-back matches the reported outcome
        assert grade_of(store, "A1") == "Grade 3"
        assert grade_of(store, "A2") == "Grade 8"

    @pytest.mark.asyncio
    async def test_failure_holds_back_entry_into_its_label(self, promotion, store):
        """Test students are never merged into a group whose move failed."""
        store.add_student("A1", "Grade 1", "2025")
        store.add_student("A2", "Grade 2", "2025")
        store.fail_on("update", "students", when=failing_label("Grade 2"))

        result = await promotion.apply_mapping(await promotion.propose_default_mapping())

        assert set(result.failed_labels) == {"Grade 1", "Grade 2"}
        held = next(failure for failure in result.failed if failure.label == "Grade 1")
        assert "held back" in held.error
        assert result.held_back_labels == ["Grade 1"]
        assert held.source == "Grade 1"
        assert result.remaining().entries == {"Grade 2": "Grade 3", "Grade 1": "Grade 2"}
        assert grade_of(store, "A1") == "Grade 1"
        assert grade_of(store, "A2") == "Grade 2"

    @pytest.mark.asyncio
    async def test_retry_of_remaining_entries(self, promotion, store):
        """Test re-applying only the failed entries completes the promotion."""
        store.add_student("A1", "Grade 3", "2025")
        store.add_student("A2", "Grade 7", "2025")
        store.fail_on("update", "students", when=failing_label("Grade 3"), times=1)
        mapping = await promotion.propose_default_mapping()

        first = await promotion.apply_mapping(mapping)
        second = await promotion.apply_mapping(first.remaining(mapping.scope))

        assert second.is_complete
        assert second.succeeded == ["Grade 3"]
        assert grade_of(store, "A1") == "Grade 4"
        assert grade_of(store, "A2") == "Grade 8"

    @pytest.mark.asyncio
    async def test_scope_limits_updates(self, promotion, store):
        store.add_student("A1", "Grade 3", "2024")
        store.add_student("A1", "Grade 3", "2025")
        scope = {"academic_year_recorded": "2025"}

        await promotion.apply_mapping(await promotion.propose_default_mapping(scope))

        assert store.rows("students", academic_year_recorded="2024")[0]["current_grade"] == "Grade 3"
        assert store.rows("students", academic_year_recorded="2025")[0]["current_grade"] == "Grade 4"

    @pytest.mark.asyncio
    async def test_audited(self, promotion, store):
        store.add_student("A1", "Grade 3", "2025")

        await promotion.apply_mapping(await promotion.propose_default_mapping())

        assert [entry["action"] for entry in store.rows("audit_logs")] == [
            AuditAction.GRADE_PROMOTION
        ]
