# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Relational record store used by the academic year engine.

The engine only needs a narrow query/mutation surface over named tables:
equality-filtered reads, bulk inserts, filtered updates and deletes, and
one atomic statement that moves the current-year flag. RecordStore
describes that surface; SQLAlchemyRecordStore implements it on the Core
tables from dhims.infrastructure.database.tables, running every call in
its own transaction.

Filters are equality maps of column name to value, where None matches
NULL. Order keys are column names, prefixed with "-" for descending.

Example:
    store = SQLAlchemyRecordStore(get_sessionmaker())
    rows = await store.query("academic_years", order_by=["-start_date"])
    await store.update("students", {"current_grade": "Grade 3"}, {"current_grade": "Grade 4"})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dhims.infrastructure.database.connection import DatabaseError, transaction
from dhims.infrastructure.database.tables import TABLES, academic_years
from dhims.utils.datetime import utc_now

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filters = Mapping[str, Any]


class RecordStore(Protocol):
    """Query/mutation interface over the console's tables."""

    async def query(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: Sequence[str] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Row]: ...

    async def count(self, table: str, filters: Filters | None = None) -> int: ...

    async def insert(self, table: str, rows: Sequence[Row]) -> list[Row]: ...

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int: ...

    async def delete(self, table: str, filters: Filters) -> int: ...

    async def set_current_year(self, year_id: str) -> int: ...


class SQLAlchemyRecordStore:
    """RecordStore backed by SQLAlchemy Core and an async sessionmaker.

    Attributes:
        sessionmaker: Factory for the sessions each call runs in.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            sessionmaker: Async sessionmaker bound to the console database.
        """
        self.sessionmaker = sessionmaker

    async def query(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: Sequence[str] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[Row]:
        """Read rows matching the filters.

        Args:
            table: Table name.
            filters: Equality filters.
            columns: Columns to return; all columns when omitted.
            order_by: Order keys, "-" prefix for descending.

        Returns:
            Matching rows as dictionaries.

        Raises:
            DatabaseError: If the table or a column is unknown or the read fails.
        """
        tbl = self._table(table)
        selected = [self._column(tbl, name) for name in columns] if columns else list(tbl.c)
        stmt = sa.select(*selected).where(*self._where(tbl, filters))
        for key in order_by or ():
            column = self._column(tbl, key.lstrip("-"))
            stmt = stmt.order_by(column.desc() if key.startswith("-") else column.asc())

        async with transaction(self.sessionmaker) as session:
            result = await session.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def count(self, table: str, filters: Filters | None = None) -> int:
        """Count rows matching the filters."""
        tbl = self._table(table)
        stmt = sa.select(sa.func.count()).select_from(tbl).where(*self._where(tbl, filters))

        async with transaction(self.sessionmaker) as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        """Insert rows and return them as stored, including generated ids.

        Args:
            table: Table name.
            rows: Rows to insert. Missing columns take their defaults.

        Returns:
            Inserted rows.

        Raises:
            DatabaseError: If the insert fails.
        """
        if not rows:
            return []
        tbl = self._table(table)
        stmt = sa.insert(tbl).returning(*tbl.c)

        async with transaction(self.sessionmaker) as session:
            result = await session.execute(stmt, [dict(row) for row in rows])
            inserted = [dict(row) for row in result.mappings().all()]

        logger.debug("Inserted %d rows into %s", len(inserted), table)
        return inserted

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        """Apply a patch to every row matching the filters.

        Returns:
            Number of rows updated.

        Raises:
            DatabaseError: If the update fails.
        """
        tbl = self._table(table)
        stmt = sa.update(tbl).where(*self._where(tbl, filters)).values(**patch)

        async with transaction(self.sessionmaker) as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def delete(self, table: str, filters: Filters) -> int:
        """Delete every row matching the filters.

        Returns:
            Number of rows deleted.

        Raises:
            DatabaseError: If the delete fails.
        """
        tbl = self._table(table)
        stmt = sa.delete(tbl).where(*self._where(tbl, filters))

        async with transaction(self.sessionmaker) as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def set_current_year(self, year_id: str) -> int:
        """Make one academic year current and clear the flag everywhere else.

        Issued as a single conditional UPDATE so concurrent readers never
        see zero or two current years:

            UPDATE academic_years SET is_current = (id = :year_id)
            WHERE is_current OR id = :year_id

        Args:
            year_id: Academic year to make current.

        Returns:
            Number of rows touched. Zero means the year does not exist and
            no current year was set.

        Raises:
            DatabaseError: If the statement fails.
        """
        c = academic_years.c
        stmt = (
            sa.update(academic_years)
            .where(sa.or_(c.is_current.is_(True), c.id == year_id))
            .values(is_current=(c.id == year_id), updated_at=utc_now())
        )

        async with transaction(self.sessionmaker) as session:
            # Row locks serialize concurrent swaps; the UPDATE below then
            # runs on a snapshot that includes the winner's commit.
            locked = await session.execute(sa.select(c.id).with_for_update())
            if year_id not in set(locked.scalars().all()):
                return 0
            result = await session.execute(stmt)
            return result.rowcount or 0

    def _table(self, name: str) -> sa.Table:
        try:
            return TABLES[name]
        except KeyError:
            raise DatabaseError(f"Unknown table: {name}") from None

    def _column(self, table: sa.Table, name: str) -> sa.Column:
        try:
            return table.c[name]
        except KeyError:
            raise DatabaseError(f"Unknown column: {table.name}.{name}") from None

    def _where(self, table: sa.Table, filters: Filters | None) -> list[sa.ColumnElement[bool]]:
        clauses = []
        for name, value in (filters or {}).items():
            column = self._column(table, name)
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses
