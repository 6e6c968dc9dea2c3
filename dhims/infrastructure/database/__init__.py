# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the console's PostgreSQL store.

This package provides:
- SQLAlchemy async engine and session management
- Core table definitions for academic years and per-year records
- The RecordStore interface the academic year engine runs against

Example:
    from dhims.infrastructure.database import (
        init_database,
        get_sessionmaker,
        SQLAlchemyRecordStore,
    )

    await init_database(settings)
    store = SQLAlchemyRecordStore(get_sessionmaker())
"""

from dhims.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_schema,
    get_engine,
    get_sessionmaker,
    init_database,
    transaction,
)
from dhims.infrastructure.database.store import (
    Filters,
    RecordStore,
    Row,
    SQLAlchemyRecordStore,
)
from dhims.infrastructure.database.tables import TABLES, YEAR_SCOPE_COLUMNS, metadata

__all__ = [
    # Connection
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_schema",
    "get_engine",
    "get_sessionmaker",
    "init_database",
    "transaction",
    # Store
    "Filters",
    "RecordStore",
    "Row",
    "SQLAlchemyRecordStore",
    # Schema
    "TABLES",
    "YEAR_SCOPE_COLUMNS",
    "metadata",
]
