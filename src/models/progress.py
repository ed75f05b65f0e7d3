# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the progress pipeline.

This module defines Pydantic models and enums for:
- Daily activity records and their embedded arrays
- Weekly progress aggregates
- Student progress snapshots and risk alerts
- Batch run summaries

Embedded arrays (subjects studied, homework items, assessments) are
stored as JSON. Entries that cannot be parsed are dropped instead of
failing the whole record, and absent numeric fields stay ``None`` so
the calculators can exclude them from averages.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class AttendanceStatus(str, Enum):
    """Attendance status of a daily record."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    HALF_DAY = "HALF_DAY"
    EXCUSED = "EXCUSED"


class CompletionStatus(str, Enum):
    """Completion status of a homework or classwork item."""

    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    INCOMPLETE = "INCOMPLETE"
    NOT_SUBMITTED = "NOT_SUBMITTED"


class Trend(str, Enum):
    """Direction of a subject's understanding level over time."""

    UP = "UP"
    DOWN = "DOWN"
    STABLE = "STABLE"


class RiskLevel(str, Enum):
    """Ordinal risk classification of a snapshot."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        """Sort key, higher is more severe."""
        return _RISK_SEVERITY[self]


_RISK_SEVERITY = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


def _parse_entries(model: type[BaseModel], value: Any) -> list[BaseModel]:
    """Parse a JSON array leniently, dropping entries that do not fit."""
    if value is None or not isinstance(value, (list, tuple)):
        return []

    parsed = []
    for item in value:
        if isinstance(item, model):
            parsed.append(item)
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            continue
    return parsed


# ============================================================================
# Daily activity (input)
# ============================================================================


class SubjectStudied(BaseModel):
    """A subject studied on one day."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str | None = None
    topics_covered: list[str] = Field(default_factory=list)
    understanding_level: float | None = None

    @field_validator("topics_covered", mode="before")
    @classmethod
    def _coerce_topics(cls, value: Any) -> list[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(topic) for topic in value]


class WorkItem(BaseModel):
    """A homework or classwork item."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str | None = None
    title: str | None = None
    completion_status: str | None = None
    quality: float | None = None

    @property
    def is_complete(self) -> bool:
        return self.completion_status == CompletionStatus.COMPLETE.value


class AssessmentTaken(BaseModel):
    """An assessment taken on one day."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str | None = None
    type: str | None = None
    marks_obtained: float | None = None
    total_marks: float | None = None


class SkillsSnapshot(BaseModel):
    """Teacher-rated skill levels (1-5) for one day."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    reading: float | None = None
    writing: float | None = None
    listening: float | None = None
    speaking: float | None = None
    critical_thinking: float | None = None


SKILL_KEYS = ("reading", "writing", "listening", "speaking", "critical_thinking")


class DailyActivityRecord(BaseModel):
    """One student's activity for one calendar day.

    Attributes:
        student_id: Student identifier.
        date: Calendar day of the record.
        attendance_status: One of AttendanceStatus, or None if not taken.
        punctuality: Whether the student arrived on time.
        subjects_studied: Subjects covered with understanding levels.
        homework_assigned: Homework given that day.
        homework_completed: Homework handed in that day.
        classwork_completed: Classwork done that day.
        assessments_taken: Assessments with marks.
        behavior_rating: Behavior rating (1-5).
        participation_level: Participation rating (1-5).
        discipline_score: Discipline rating (1-5).
        uniform_compliance: Whether the uniform was compliant.
        skills_snapshot: Skill ratings, sparse.
    """

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    student_id: str | None = None
    date: date
    attendance_status: str | None = None
    punctuality: bool = False
    subjects_studied: list[SubjectStudied] = Field(default_factory=list)
    homework_assigned: list[WorkItem] = Field(default_factory=list)
    homework_completed: list[WorkItem] = Field(default_factory=list)
    classwork_completed: list[WorkItem] = Field(default_factory=list)
    assessments_taken: list[AssessmentTaken] = Field(default_factory=list)
    behavior_rating: float | None = None
    participation_level: float | None = None
    discipline_score: float | None = None
    uniform_compliance: bool = False
    skills_snapshot: SkillsSnapshot | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("punctuality", "uniform_compliance", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("subjects_studied", mode="before")
    @classmethod
    def _parse_subjects(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(SubjectStudied, value)

    @field_validator(
        "homework_assigned", "homework_completed", "classwork_completed", mode="before"
    )
    @classmethod
    def _parse_work_items(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(WorkItem, value)

    @field_validator("assessments_taken", mode="before")
    @classmethod
    def _parse_assessments(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(AssessmentTaken, value)

    @field_validator("skills_snapshot", mode="before")
    @classmethod
    def _parse_skills(cls, value: Any) -> Any:
        if value is None or isinstance(value, SkillsSnapshot):
            return value
        try:
            return SkillsSnapshot.model_validate(value)
        except ValidationError:
            return None


# ============================================================================
# Weekly progress (aggregate)
# ============================================================================


class SubjectAssessment(BaseModel):
    """An assessment attributed to a subject within a week."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    type: str | None = None
    score: float | None = None
    out_of: float | None = None
    percentage: int | None = None


class SubjectProgress(BaseModel):
    """Per-subject progress within one week."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str
    topics_completed: int = 0
    assessments: list[SubjectAssessment] = Field(default_factory=list)
    avg_understanding: float = 0
    trend: Trend = Trend.STABLE

    @field_validator("assessments", mode="before")
    @classmethod
    def _parse_assessments(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(SubjectAssessment, value)


class AssessmentResult(BaseModel):
    """Per-subject assessment summary within one week."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str | None = None
    count: int = 0
    avg_score: float = 0
    avg_percentage: float = 0


class WeeklyProgressData(BaseModel):
    """Computed fields of a WeeklyProgress row.

    Commentary fields are deliberately absent: they are owned by
    teachers and never produced by the calculator.
    """

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    # Attendance
    total_days_present: int = 0
    total_days_absent: int = 0
    total_days_late: int = 0
    total_days_excused: int = 0
    total_holidays: int = 0
    total_working_days: int = 0
    attendance_percentage: float = 0
    punctuality_percentage: float = 0

    # Subjects
    subject_wise_progress: list[SubjectProgress] = Field(default_factory=list)

    # Homework
    homework_assigned_count: int = 0
    homework_completed_count: int = 0
    homework_completion_rate: float = 0
    average_homework_quality: float = 0

    # Classwork
    classwork_completion_rate: float = 0
    average_classwork_quality: float = 0

    # Assessments
    total_assessments: int = 0
    assessment_results: list[AssessmentResult] = Field(default_factory=list)
    overall_average_score: float = 0

    # Behavioral
    average_behavior_score: float = 0
    average_participation_score: float = 0
    average_discipline_score: float = 0
    uniform_compliance_rate: float = 0

    # Skills
    average_reading_skill: float = 0
    average_writing_skill: float = 0
    average_listening_skill: float = 0
    average_speaking_skill: float = 0
    average_critical_thinking: float = 0

    # Highlights
    strength_subjects: list[str] = Field(default_factory=list)
    weak_subjects: list[str] = Field(default_factory=list)

    @field_validator("subject_wise_progress", mode="before")
    @classmethod
    def _parse_subjects(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(SubjectProgress, value)

    @field_validator("assessment_results", mode="before")
    @classmethod
    def _parse_results(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(AssessmentResult, value)

    @field_validator(
        "total_days_present",
        "total_days_absent",
        "total_days_late",
        "total_days_excused",
        "total_holidays",
        "total_working_days",
        "homework_assigned_count",
        "homework_completed_count",
        "total_assessments",
        mode="before",
    )
    @classmethod
    def _none_as_zero_int(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator(
        "attendance_percentage",
        "punctuality_percentage",
        "homework_completion_rate",
        "average_homework_quality",
        "classwork_completion_rate",
        "average_classwork_quality",
        "overall_average_score",
        "average_behavior_score",
        "average_participation_score",
        "average_discipline_score",
        "uniform_compliance_rate",
        "average_reading_skill",
        "average_writing_skill",
        "average_listening_skill",
        "average_speaking_skill",
        "average_critical_thinking",
        mode="before",
    )
    @classmethod
    def _none_as_zero_float(cls, value: Any) -> Any:
        return 0 if value is None else float(value)

    def to_columns(self) -> dict[str, Any]:
        """Column values for the weekly_progress table."""
        columns = self.model_dump()
        columns["subject_wise_progress"] = [
            s.model_dump(mode="json") for s in self.subject_wise_progress
        ]
        columns["assessment_results"] = [
            r.model_dump(mode="json") for r in self.assessment_results
        ]
        return columns


class WeeklyProgressRecord(WeeklyProgressData):
    """A persisted weekly aggregate with its identifying week.

    Commentary fields are written by teachers through
    ``WeeklyProgressService.update_commentary`` and survive recomputation.
    """

    id: str
    student_id: str
    week_number: int
    year: int
    start_date: date | None = None
    end_date: date | None = None
    class_room_id: str | None = None
    teacher_id: str | None = None

    # Commentary
    weekly_highlights: str | None = None
    areas_of_improvement: str | None = None
    teacher_comments: str | None = None
    achievements: list[Any] | None = None
    incidents: list[Any] | None = None
    action_items: list[Any] | None = None
    follow_up_required: bool = False


# ============================================================================
# Snapshot
# ============================================================================


class SubjectPerformance(BaseModel):
    """Per-subject performance across the snapshot window."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    subject_id: str
    percentage: float = 0
    avg_understanding: float = 0
    trend: Trend = Trend.STABLE


class RiskAssessment(BaseModel):
    """Outcome of the multi-factor risk classification."""

    risk_level: RiskLevel = RiskLevel.LOW
    needs_attention: bool = False
    attention_reasons: list[str] = Field(default_factory=list)
    intervention_required: bool = False
    flagged_subjects: list[str] = Field(default_factory=list)


class SnapshotData(BaseModel):
    """Computed fields of a StudentProgressSnapshot row."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    # Totals
    total_days_attended: int = 0
    total_days_absent: int = 0
    overall_attendance_rate: float = 0

    # Streaks
    current_attendance_streak: int = 0
    longest_attendance_streak: int = 0
    current_homework_streak: int = 0

    # Academic
    subject_wise_performance: list[SubjectPerformance] = Field(default_factory=list)
    strongest_subjects: list[str] = Field(default_factory=list)
    weakest_subjects: list[str] = Field(default_factory=list)
    improving_subjects: list[str] = Field(default_factory=list)
    declining_subjects: list[str] = Field(default_factory=list)

    # Homework
    overall_homework_completion_rate: float = 0
    average_homework_quality: float = 0

    # Behavioral
    average_behavior_rating: float = 0
    average_participation: float = 0
    average_discipline: float = 0
    punctuality_rate: float = 0

    # Skills
    current_reading_level: float = 0
    current_writing_level: float = 0
    current_listening_level: float = 0
    current_speaking_level: float = 0
    current_critical_thinking: float = 0

    # Risk
    risk_level: RiskLevel = RiskLevel.LOW
    needs_attention: bool = False
    attention_reasons: list[str] = Field(default_factory=list)
    intervention_required: bool = False
    flagged_subjects: list[str] = Field(default_factory=list)

    # Meta
    last_calculated_at: datetime | None = None
    next_calculation_due: datetime | None = None

    @field_validator("subject_wise_performance", mode="before")
    @classmethod
    def _parse_performance(cls, value: Any) -> list[BaseModel]:
        return _parse_entries(SubjectPerformance, value)

    def to_columns(self) -> dict[str, Any]:
        """Column values for the student_progress_snapshots table."""
        columns = self.model_dump()
        columns["subject_wise_performance"] = [
            s.model_dump(mode="json") for s in self.subject_wise_performance
        ]
        columns["risk_level"] = self.risk_level.value
        return columns


class StudentSnapshot(SnapshotData):
    """A persisted snapshot as served to readers."""

    student_id: str
    last_activity_date: date | None = None


# ============================================================================
# Alerts and runs
# ============================================================================


class RiskAlert(BaseModel):
    """Payload of a risk alert sent to the student's teacher."""

    student_id: str
    student_name: str
    risk_level: RiskLevel
    reasons: list[str] = Field(default_factory=list)
    teacher_id: str | None = None
    class_room_id: str | None = None


class BatchRunResult(BaseModel):
    """Summary of a due or full recomputation run."""

    processed: int = 0
    errors: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump()


class ClassroomRunResult(BaseModel):
    """Summary of a classroom-scoped recomputation run."""

    class_room_id: str
    successful: int = 0
    failed: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump()
