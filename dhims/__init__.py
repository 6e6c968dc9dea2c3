# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DHIMS academic core.

Academic year transition and data migration engine for the school and
sponsorship administration console.
"""

__version__ = "0.1.0"
