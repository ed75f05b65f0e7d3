# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic data models shared across layers."""

from src.models.progress import (
    SKILL_KEYS,
    AssessmentResult,
    AssessmentTaken,
    AttendanceStatus,
    BatchRunResult,
    ClassroomRunResult,
    CompletionStatus,
    DailyActivityRecord,
    RiskAlert,
    RiskAssessment,
    RiskLevel,
    SkillsSnapshot,
    SnapshotData,
    StudentSnapshot,
    SubjectAssessment,
    SubjectPerformance,
    SubjectProgress,
    SubjectStudied,
    Trend,
    WeeklyProgressData,
    WeeklyProgressRecord,
    WorkItem,
)

__all__ = [
    "SKILL_KEYS",
    "AssessmentResult",
    "AssessmentTaken",
    "AttendanceStatus",
    "BatchRunResult",
    "ClassroomRunResult",
    "CompletionStatus",
    "DailyActivityRecord",
    "RiskAlert",
    "RiskAssessment",
    "RiskLevel",
    "SkillsSnapshot",
    "SnapshotData",
    "StudentSnapshot",
    "SubjectAssessment",
    "SubjectPerformance",
    "SubjectProgress",
    "SubjectStudied",
    "Trend",
    "WeeklyProgressData",
    "WeeklyProgressRecord",
    "WorkItem",
]
