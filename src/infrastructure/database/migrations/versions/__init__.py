# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School database migrations.

Contains migrations for:
- School structure (students, classrooms, enrollments, academic calendar)
- Daily activity records
- Weekly progress and progress snapshots
- Progress notifications
"""
