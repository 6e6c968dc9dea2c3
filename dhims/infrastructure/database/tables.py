# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Table definitions for the console's relational store.

The engine works against plain rows rather than ORM instances, so the
schema is declared with SQLAlchemy Core tables on a shared MetaData.
Per-year data is scoped by year *name* (the label users see), not by
academic year id, matching how rows are recorded by the console.
"""

from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from dhims.utils.datetime import utc_now

metadata = sa.MetaData()


def _new_id() -> str:
    return str(uuid4())


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        primary_key=True,
        default=_new_id,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utc_now),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            default=utc_now,
            onupdate=utc_now,
        ),
    ]


academic_years = sa.Table(
    "academic_years",
    metadata,
    _id_column(),
    sa.Column("year_name", sa.String(20), nullable=False, unique=True),
    sa.Column("start_date", sa.Date, nullable=False),
    sa.Column("end_date", sa.Date, nullable=False),
    sa.Column("is_current", sa.Boolean, nullable=False, default=False, server_default="false"),
    sa.Column("created_by", postgresql.UUID(as_uuid=False), nullable=True),
    *_timestamps(),
    sa.CheckConstraint("end_date > start_date", name="ck_academic_years_date_order"),
)
sa.Index("ix_academic_years_is_current", academic_years.c.is_current)

sponsors = sa.Table(
    "sponsors",
    metadata,
    _id_column(),
    sa.Column("first_name", sa.String(100), nullable=False),
    sa.Column("last_name", sa.String(100), nullable=False),
    sa.Column("email", sa.String(255), nullable=False),
    sa.Column("phone", sa.String(50), nullable=True),
    sa.Column("country", sa.String(100), nullable=True),
    sa.Column("status", sa.String(20), nullable=False, default="active"),
    sa.Column("start_date", sa.Date, nullable=True),
    *_timestamps(),
)

students = sa.Table(
    "students",
    metadata,
    _id_column(),
    sa.Column("name", sa.String(200), nullable=False),
    sa.Column("admission_number", sa.String(50), nullable=False),
    sa.Column("current_grade", sa.String(50), nullable=True),
    sa.Column("status", sa.String(20), nullable=False, default="active"),
    sa.Column("gender", sa.String(20), nullable=True),
    sa.Column("dob", sa.Date, nullable=True),
    sa.Column("location", sa.String(200), nullable=True),
    sa.Column("school_level", sa.String(50), nullable=True),
    sa.Column("admission_date", sa.Date, nullable=True),
    sa.Column(
        "sponsor_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("sponsors.id", ondelete="SET NULL"),
        nullable=True,
    ),
    sa.Column("sponsored_since", sa.Date, nullable=True),
    sa.Column("academic_year_recorded", sa.String(20), nullable=True),
    *_timestamps(),
)
sa.Index("ix_students_current_grade", students.c.current_grade)
sa.Index("ix_students_academic_year_recorded", students.c.academic_year_recorded)

exams = sa.Table(
    "exams",
    metadata,
    _id_column(),
    sa.Column("name", sa.String(200), nullable=False),
    sa.Column("term", sa.String(50), nullable=True),
    sa.Column("academic_year", sa.String(20), nullable=False),
    sa.Column("exam_date", sa.Date, nullable=True),
    sa.Column("max_score", sa.Integer, nullable=True),
    *_timestamps(),
)
sa.Index("ix_exams_academic_year", exams.c.academic_year)

student_exam_scores = sa.Table(
    "student_exam_scores",
    metadata,
    _id_column(),
    sa.Column(
        "student_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column(
        "exam_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("score", sa.Numeric(6, 2), nullable=True),
    sa.Column("did_not_sit", sa.Boolean, nullable=False, default=False),
    sa.Column("academic_year", sa.String(20), nullable=False),
    *_timestamps(),
)

timeline_events = sa.Table(
    "timeline_events",
    metadata,
    _id_column(),
    sa.Column(
        "student_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=True,
    ),
    sa.Column("title", sa.String(200), nullable=False),
    sa.Column("description", sa.Text, nullable=True),
    sa.Column("type", sa.String(50), nullable=False),
    sa.Column("date", sa.Date, nullable=True),
    sa.Column("academic_year", sa.String(20), nullable=False),
    *_timestamps(),
)

student_photos = sa.Table(
    "student_photos",
    metadata,
    _id_column(),
    sa.Column(
        "student_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("url", sa.Text, nullable=False),
    sa.Column("caption", sa.Text, nullable=True),
    sa.Column("date_taken", sa.Date, nullable=True),
    sa.Column("academic_year", sa.String(20), nullable=False),
    *_timestamps(),
)

student_letters = sa.Table(
    "student_letters",
    metadata,
    _id_column(),
    sa.Column(
        "student_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("content", sa.Text, nullable=True),
    sa.Column("file_url", sa.Text, nullable=True),
    sa.Column("date", sa.Date, nullable=True),
    sa.Column("academic_year", sa.String(20), nullable=False),
    *_timestamps(),
)

audit_logs = sa.Table(
    "audit_logs",
    metadata,
    _id_column(),
    sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=True),
    sa.Column("action", sa.String(50), nullable=False),
    sa.Column("entity", sa.String(50), nullable=False),
    sa.Column("entity_id", sa.String(100), nullable=True),
    sa.Column("details", sa.Text, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, default=utc_now),
)

TABLES: dict[str, sa.Table] = {table.name: table for table in metadata.sorted_tables}

# Column holding the academic year name for each year-scoped table
YEAR_SCOPE_COLUMNS: dict[str, str] = {
    "students": "academic_year_recorded",
    "exams": "academic_year",
    "student_exam_scores": "academic_year",
    "timeline_events": "academic_year",
    "student_photos": "academic_year",
    "student_letters": "academic_year",
}
