# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the progress domain.

Each exception carries an HTTP-style ``status_code`` so that callers
exposing the pipeline over an API can map errors without inspecting
their types.
"""


class ProgressError(Exception):
    """Base exception for progress pipeline errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP-style status code for the error.
    """

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class StudentNotFoundError(ProgressError):
    """Raised when a student does not exist."""

    status_code = 404

    def __init__(self, student_id: str) -> None:
        super().__init__(f"Student not found: {student_id}")
        self.student_id = student_id


class IneligibleStudentError(ProgressError):
    """Raised when a student's type is excluded from progress tracking."""

    status_code = 422

    def __init__(self, student_id: str, student_type: str | None) -> None:
        super().__init__(
            f"Progress tracking not available for student type: {student_type}"
        )
        self.student_id = student_id
        self.student_type = student_type


class SnapshotNotFoundError(ProgressError):
    """Raised when a student has no progress snapshot yet."""

    status_code = 404

    def __init__(self, student_id: str) -> None:
        super().__init__(f"Progress snapshot not found for student: {student_id}")
        self.student_id = student_id


class WeeklyProgressNotFoundError(ProgressError):
    """Raised when a weekly progress record does not exist."""

    status_code = 404


class NoUpdatableFieldsError(ProgressError):
    """Raised when a commentary update carries no allowed field."""

    status_code = 400

    def __init__(self) -> None:
        super().__init__("No valid fields to update")
