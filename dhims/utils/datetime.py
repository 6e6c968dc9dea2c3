# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the DHIMS academic core.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware (with timezone.utc), so naive and aware values are never
mixed. Academic year boundaries are plain calendar dates.

Usage:
------
    from dhims.utils.datetime import utc_now

    # For SQLAlchemy column defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Get the current calendar date in UTC."""
    return utc_now().date()


def calendar_year_bounds(year: int) -> tuple[date, date]:
    """Get the first and last day of a calendar year.

    Args:
        year: Calendar year.

    Returns:
        Tuple of (January 1st, December 31st).

    Example:
        >>> calendar_year_bounds(2025)
        (datetime.date(2025, 1, 1), datetime.date(2025, 12, 31))
    """
    return date(year, 1, 1), date(year, 12, 31)
