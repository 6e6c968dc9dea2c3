# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit trail of academic year operations.

Entries are written after the audited change has committed. A failed
audit write is logged and does not undo or fail that change.
"""

from __future__ import annotations

import logging

from dhims.infrastructure.database.connection import DatabaseError
from dhims.infrastructure.database.store import RecordStore

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit log action names."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ACADEMIC_YEAR_CHANGE = "academic_year_change"
    GRADE_PROMOTION = "grade_promotion"
    DATA_COPY = "data_copy"
    ACADEMIC_DATA_WIPE = "academic_data_wipe"


class AuditTrail:
    """Writes audit entries to the audit_logs table.

    Attributes:
        store: Record store holding audit_logs.
        user_id: Acting user recorded on each entry.
        enabled: When False, record() is a no-op.
    """

    def __init__(
        self,
        store: RecordStore,
        user_id: str | None = None,
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.enabled = enabled

    async def record(
        self,
        action: str,
        entity: str,
        entity_id: str | None,
        details: str,
    ) -> bool:
        """Write one audit entry.

        Args:
            action: One of the AuditAction names.
            entity: Entity type, e.g. "academic_year" or "students".
            entity_id: Id of the affected entity, if any.
            details: Human-readable description.

        Returns:
            True if the entry was written.
        """
        if not self.enabled:
            return False
        try:
            await self.store.insert(
                "audit_logs",
                [
                    {
                        "user_id": self.user_id,
                        "action": action,
                        "entity": entity,
                        "entity_id": entity_id,
                        "details": details,
                    }
                ],
            )
        except DatabaseError as e:
            logger.warning("Failed to write audit entry %s/%s: %s", action, entity, e)
            return False
        return True
