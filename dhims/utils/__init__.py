# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the DHIMS academic core.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from dhims.utils.datetime import calendar_year_bounds, utc_now, utc_today
from dhims.utils.logging import bind_context, get_logger, setup_logging, unbind_context

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    # Datetime
    "utc_now",
    "utc_today",
    "calendar_year_bounds",
]
