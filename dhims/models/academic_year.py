# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Academic year data models.

This module defines Pydantic models for:
- The academic year record as returned to callers
- Create and update requests
- Copy destinations (existing year or a year to be created)
- Per-year record summaries
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AcademicYear(BaseModel):
    """Authoritative state of one academic year record.

    Returned by every operation that reads or mutates a year so callers
    re-render from it instead of patching a cached copy.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    year_name: str
    start_date: date
    end_date: date
    is_current: bool = False
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AcademicYear":
        """Build from a store row, stringifying the id."""
        data = dict(row)
        data["id"] = str(data["id"])
        if data.get("created_by") is not None:
            data["created_by"] = str(data["created_by"])
        return cls.model_validate(data)


class AcademicYearCreateRequest(BaseModel):
    """Request to create an academic year.

    is_current asks for the new year to become current once created. The
    record itself is always inserted as not current; the switch goes
    through the current-year transition so grades are promoted.
    """

    year_name: str = Field(..., description="Year label, e.g. 2025 or 2024-2025")
    start_date: date
    end_date: date
    is_current: bool = False
    created_by: str | None = None


class AcademicYearUpdateRequest(BaseModel):
    """Partial update of an academic year's name or dates."""

    year_name: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class NewYearDestination(BaseModel):
    """Copy destination that is created as the first step of the copy."""

    year_name: str
    start_date: date
    end_date: date


class ExistingYearDestination(BaseModel):
    """Copy destination that already exists."""

    year_id: str


CopyDestination = NewYearDestination | ExistingYearDestination


class YearSummary(BaseModel):
    """Row counts of the per-year tables for one academic year."""

    year: AcademicYear
    counts: dict[str, int] = Field(default_factory=dict)
