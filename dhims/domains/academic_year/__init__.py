# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Academic year domain package.

This package provides the academic year transition and data migration
engine:
- Academic year CRUD with name/date validation
- Setting the single current academic year
- Grade promotion when the current year changes
- Copying student, exam and sponsorship data between years
- Deleting a year's transactional data
"""

from dhims.domains.academic_year.audit import AuditAction, AuditTrail
from dhims.domains.academic_year.copy_operation import CopyOperation, CopyOperationEngine
from dhims.domains.academic_year.errors import (
    AcademicYearServiceError,
    CopyOperationStateError,
    CurrentYearDataProtected,
    CurrentYearDeletionForbidden,
    GradePromotionIncomplete,
    IncompleteMappingError,
    SameYearCopyForbidden,
    StorageError,
    ValidationError,
    ValidationIssue,
    ValidationIssueCode,
    YearNotFound,
)
from dhims.domains.academic_year.grade_promotion import GradePromotionEngine
from dhims.domains.academic_year.repository import AcademicYearRepository
from dhims.domains.academic_year.retention import YEAR_DATA_TABLES, DataRetentionService
from dhims.domains.academic_year.service import AcademicYearService
from dhims.domains.academic_year.transition import (
    CurrentYearTransitionController,
    TransitionResult,
)
from dhims.domains.academic_year.validator import ValidationResult, YearValidator

__all__ = [
    # Service
    "AcademicYearService",
    # Components
    "AcademicYearRepository",
    "AuditAction",
    "AuditTrail",
    "CopyOperation",
    "CopyOperationEngine",
    "CurrentYearTransitionController",
    "DataRetentionService",
    "GradePromotionEngine",
    "TransitionResult",
    "ValidationResult",
    "YearValidator",
    "YEAR_DATA_TABLES",
    # Errors
    "AcademicYearServiceError",
    "CopyOperationStateError",
    "CurrentYearDataProtected",
    "CurrentYearDeletionForbidden",
    "GradePromotionIncomplete",
    "IncompleteMappingError",
    "SameYearCopyForbidden",
    "StorageError",
    "ValidationError",
    "ValidationIssue",
    "ValidationIssueCode",
    "YearNotFound",
]
