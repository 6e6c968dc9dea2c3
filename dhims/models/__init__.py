# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic data models shared by the academic year engine and its callers."""

from dhims.models.academic_year import (
    AcademicYear,
    AcademicYearCreateRequest,
    AcademicYearUpdateRequest,
    CopyDestination,
    ExistingYearDestination,
    NewYearDestination,
    YearSummary,
)
from dhims.models.migration import (
    COPY_ORDER,
    CREATE_YEAR_STEP,
    ApplyResult,
    CopyCategory,
    CopyStatus,
    DeletionResult,
    EntryFailure,
    GradePromotionMapping,
    ProgressUpdate,
)

__all__ = [
    # Academic year
    "AcademicYear",
    "AcademicYearCreateRequest",
    "AcademicYearUpdateRequest",
    "CopyDestination",
    "ExistingYearDestination",
    "NewYearDestination",
    "YearSummary",
    # Migration
    "COPY_ORDER",
    "CREATE_YEAR_STEP",
    "ApplyResult",
    "CopyCategory",
    "CopyStatus",
    "DeletionResult",
    "EntryFailure",
    "GradePromotionMapping",
    "ProgressUpdate",
]
