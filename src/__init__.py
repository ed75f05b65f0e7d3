"""Student Progress Analytics.

Aggregates daily student activity into weekly progress records and
rolling, risk-scored student snapshots, and alerts teachers about
students that need intervention.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
