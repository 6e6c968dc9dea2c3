# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit test fixtures.

Provides an in-memory RecordStore with failure injection and the academic
year components wired on top of it.
"""

from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from typing import Any
from uuid import uuid4

import pytest

from dhims.core.config.settings import AcademicYearSettings
from dhims.domains.academic_year.audit import AuditTrail
from dhims.domains.academic_year.copy_operation import CopyOperationEngine
from dhims.domains.academic_year.grade_promotion import GradePromotionEngine
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.domains.academic_year.retention import DataRetentionService
from dhims.domains.academic_year.service import AcademicYearService
from dhims.domains.academic_year.transition import CurrentYearTransitionController
from dhims.domains.academic_year.validator import YearValidator
from dhims.infrastructure.database.connection import DatabaseError
from dhims.utils.datetime import utc_now

FailurePredicate = Callable[[Mapping[str, Any] | None], bool]


class InMemoryRecordStore:
    """RecordStore keeping rows in dictionaries.

    Failures are injected per operation and table with fail_on(); the
    matching call raises DatabaseError without changing anything.

    Attributes:
        tables: Rows per table name.
        calls: (operation, table, filters) of every call, in order.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self._failures: list[dict[str, Any]] = []

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail_on(
        self,
        op: str,
        table: str,
        when: FailurePredicate | None = None,
        times: int | None = None,
    ) -> None:
        """Make matching calls raise DatabaseError.

        Args:
            op: query, count, insert, update, delete or set_current_year.
            table: Table name.
            when: Predicate on the call's filters; every call when omitted.
            times: Number of failures before the rule expires; unlimited
                when omitted.
        """
        self._failures.append({"op": op, "table": table, "when": when, "times": times})

    def clear_failures(self) -> None:
        self._failures.clear()

    def add_year(self, year_name: str, is_current: bool = False, **extra: Any) -> dict[str, Any]:
        """Seed an academic year spanning its first calendar year."""
        first = int(year_name[:4])
        return self._add(
            "academic_years",
            {
                "year_name": year_name,
                "start_date": date(first, 1, 1),
                "end_date": date(first, 12, 31),
                "is_current": is_current,
                "created_by": None,
                **extra,
            },
        )

    def add_student(
        self,
        admission_number: str,
        current_grade: str,
        academic_year_recorded: str,
        status: str = "active",
        **extra: Any,
    ) -> dict[str, Any]:
        return self._add(
            "students",
            {
                "admission_number": admission_number,
                "name": f"Student {admission_number}",
                "current_grade": current_grade,
                "status": status,
                "academic_year_recorded": academic_year_recorded,
                "sponsor_id": None,
                "sponsored_since": None,
                **extra,
            },
        )

    def add(self, table: str, **row: Any) -> dict[str, Any]:
        return self._add(table, row)

    def rows(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        return [dict(row) for row in self.tables[table] if self._matches(row, filters)]

    def ops(self, op: str, table: str) -> list[dict[str, Any] | None]:
        """Filters of every recorded call of one operation on one table."""
        return [filters for name, tbl, filters in self.calls if name == op and tbl == table]

    # -------------------------------------------------------------------------
    # RecordStore
    # -------------------------------------------------------------------------

    async def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        columns: Sequence[str] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        self._enter("query", table, filters)
        rows = [dict(row) for row in self.tables[table] if self._matches(row, filters)]
        for key in reversed(list(order_by or ())):
            name = key.lstrip("-")
            rows.sort(key=lambda row: row.get(name), reverse=key.startswith("-"))
        if columns:
            rows = [{name: row.get(name) for name in columns} for row in rows]
        return rows

    async def count(self, table: str, filters: Mapping[str, Any] | None = None) -> int:
        self._enter("count", table, filters)
        return sum(1 for row in self.tables[table] if self._matches(row, filters))

    async def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        self._enter("insert", table, None)
        return [self._add(table, dict(row)) for row in rows]

    async def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> int:
        self._enter("update", table, filters)
        matched = [row for row in self.tables[table] if self._matches(row, filters)]
        for row in matched:
            row.update(patch)
            row["updated_at"] = utc_now()
        return len(matched)

    async def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        self._enter("delete", table, filters)
        kept = [row for row in self.tables[table] if not self._matches(row, filters)]
        deleted = len(self.tables[table]) - len(kept)
        self.tables[table] = kept
        return deleted

    async def set_current_year(self, year_id: str) -> int:
        self._enter("set_current_year", "academic_years", {"id": year_id})
        rows = self.tables["academic_years"]
        if not any(row["id"] == year_id for row in rows):
            return 0
        touched = 0
        for row in rows:
            if row["is_current"] or row["id"] == year_id:
                row["is_current"] = row["id"] == year_id
                row["updated_at"] = utc_now()
                touched += 1
        return touched

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _add(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        now = utc_now()
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        self.tables[table].append(row)
        return dict(row)

    def _enter(self, op: str, table: str, filters: Mapping[str, Any] | None) -> None:
        snapshot = dict(filters) if filters is not None else None
        self.calls.append((op, table, snapshot))
        for rule in self._failures:
            if rule["op"] != op or rule["table"] != table:
                continue
            if rule["when"] is not None and not rule["when"](snapshot):
                continue
            if rule["times"] is not None:
                if rule["times"] <= 0:
                    continue
                rule["times"] -= 1
            raise DatabaseError(f"Injected {op} failure on {table}")

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
        return all(row.get(name) == value for name, value in (filters or {}).items())


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Provide an empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def year_settings() -> AcademicYearSettings:
    """Provide default academic year conventions."""
    return AcademicYearSettings(
        year_name_format="single",
        grade_label_prefix="Grade",
        max_numeric_grade=12,
        terminal_grade_label="Alumni",
        active_student_status="active",
        audit_enabled=True,
    )


@pytest.fixture
def audit(store, sample_user_id) -> AuditTrail:
    return AuditTrail(store, user_id=sample_user_id)


@pytest.fixture
def validator() -> YearValidator:
    return YearValidator("single")


@pytest.fixture
def repository(store, validator, audit) -> AcademicYearRepository:
    return AcademicYearRepository(store, validator, audit)


@pytest.fixture
def promotion(store, year_settings, audit) -> GradePromotionEngine:
    return GradePromotionEngine(store, year_settings, audit)


@pytest.fixture
def controller(repository, promotion, audit) -> CurrentYearTransitionController:
    return CurrentYearTransitionController(repository, promotion, audit)


@pytest.fixture
def copy_engine(repository, promotion, audit) -> CopyOperationEngine:
    return CopyOperationEngine(repository, promotion, audit)


@pytest.fixture
def retention(repository, audit) -> DataRetentionService:
    return DataRetentionService(repository, audit)


@pytest.fixture
def service(store, year_settings, sample_user_id) -> AcademicYearService:
    """Provide the academic year service over the in-memory store."""
    return AcademicYearService(store, year_settings, user_id=sample_user_id)
