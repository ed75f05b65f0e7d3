# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student progress snapshot calculation.

Rolls a window of weekly aggregates and recent daily records into a
risk-scored snapshot. The functions in this module are pure: they take
already loaded data and return a SnapshotData model.

Risk classification:
    Reasons are collected in a fixed order (attendance, homework,
    behavior, recent absence, struggling subjects). The level is
    CRITICAL for three or more reasons or attendance below 60%, HIGH
    for exactly two reasons or attendance below 75%, MEDIUM for one
    reason and LOW otherwise.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from src.domains.progress.utils import mean2, percent2
from src.models.progress import (
    AttendanceStatus,
    DailyActivityRecord,
    RiskAssessment,
    RiskLevel,
    SnapshotData,
    SubjectPerformance,
    Trend,
    WeeklyProgressData,
)
from src.utils.datetime import utc_now

STRONG_THRESHOLD = 4
WEAK_THRESHOLD = 2.5
TREND_DELTA = 0.3
TREND_RECENT_WEEKS = 3

CRITICAL_ATTENDANCE = 60
LOW_ATTENDANCE = 75
LOW_HOMEWORK_COMPLETION = 50
POOR_BEHAVIOR = 2

_ATTENDING = (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value)


def calculate_snapshot(
    weekly_history: Sequence[WeeklyProgressData],
    recent_activities: Sequence[DailyActivityRecord],
    previous: Any = None,
    now: datetime | None = None,
    recalculation_interval_hours: int = 24,
) -> SnapshotData:
    """Compute a student's progress snapshot.

    Args:
        weekly_history: Recent weekly aggregates, most recent week first.
        recent_activities: Daily records of the recent window, any order.
        previous: Existing snapshot (model, ORM row or mapping) or None.
        now: Calculation time. Defaults to the current UTC time.
        recalculation_interval_hours: Hours until the next recompute is due.

    Returns:
        Snapshot fields ready for upsert.
    """
    now = now or utc_now()

    attended = sum(week.total_days_present for week in weekly_history)
    absent = sum(week.total_days_absent for week in weekly_history)
    working = sum(week.total_working_days for week in weekly_history)
    attendance_rate = percent2(attended, working)

    attendance_streak, homework_streak = calculate_streaks(recent_activities)
    longest_streak = max(attendance_streak, _previous_longest_streak(previous))

    performance = aggregate_subject_performance(list(reversed(weekly_history)))

    assigned = sum(week.homework_assigned_count for week in weekly_history)
    completed = sum(week.homework_completed_count for week in weekly_history)
    homework_rate = percent2(completed, assigned)

    def positive_mean(field: str) -> float:
        return mean2(
            value
            for value in (getattr(week, field) for week in weekly_history)
            if value > 0
        )

    behavior = positive_mean("average_behavior_score")

    risk = assess_risk(
        attendance_rate=attendance_rate,
        homework_completion_rate=homework_rate,
        behavior_rating=behavior,
        performance=performance,
        attendance_streak=attendance_streak,
    )

    return SnapshotData(
        total_days_attended=attended,
        total_days_absent=absent,
        overall_attendance_rate=attendance_rate,
        current_attendance_streak=attendance_streak,
        longest_attendance_streak=longest_streak,
        current_homework_streak=homework_streak,
        subject_wise_performance=performance,
        strongest_subjects=[
            s.subject_id for s in performance if s.avg_understanding >= STRONG_THRESHOLD
        ],
        weakest_subjects=[s.subject_id for s in performance if _is_weak(s)],
        improving_subjects=[s.subject_id for s in performance if s.trend == Trend.UP],
        declining_subjects=[s.subject_id for s in performance if s.trend == Trend.DOWN],
        overall_homework_completion_rate=homework_rate,
        average_homework_quality=positive_mean("average_homework_quality"),
        average_behavior_rating=behavior,
        average_participation=positive_mean("average_participation_score"),
        average_discipline=positive_mean("average_discipline_score"),
        punctuality_rate=positive_mean("punctuality_percentage"),
        current_reading_level=positive_mean("average_reading_skill"),
        current_writing_level=positive_mean("average_writing_skill"),
        current_listening_level=positive_mean("average_listening_skill"),
        current_speaking_level=positive_mean("average_speaking_skill"),
        current_critical_thinking=positive_mean("average_critical_thinking"),
        risk_level=risk.risk_level,
        needs_attention=risk.needs_attention,
        attention_reasons=risk.attention_reasons,
        intervention_required=risk.intervention_required,
        flagged_subjects=risk.flagged_subjects,
        last_calculated_at=now,
        next_calculation_due=now + timedelta(hours=recalculation_interval_hours),
    )


def calculate_streaks(activities: Sequence[DailyActivityRecord]) -> tuple[int, int]:
    """Count the current attendance and homework streaks.

    Both streaks count consecutive days starting from the most recent
    record and stop at the first day that breaks them.

    Returns:
        Tuple of (attendance streak, homework streak).
    """
    ordered = sorted(activities, key=lambda record: record.date, reverse=True)

    attendance_streak = 0
    for record in ordered:
        if record.attendance_status not in _ATTENDING:
            break
        attendance_streak += 1

    homework_streak = 0
    for record in ordered:
        items = record.homework_completed
        if not items or not all(item.is_complete for item in items):
            break
        homework_streak += 1

    return attendance_streak, homework_streak


def aggregate_subject_performance(
    weeks: Sequence[WeeklyProgressData],
) -> list[SubjectPerformance]:
    """Aggregate per-subject performance across weeks.

    Args:
        weeks: Weekly aggregates in chronological order.

    Returns:
        One entry per subject, in order of first appearance.
    """
    subjects: dict[str, dict[str, list[float]]] = {}

    for week in weeks:
        for progress in week.subject_wise_progress:
            entry = subjects.setdefault(
                progress.subject_id, {"understandings": [], "percentages": []}
            )
            if progress.avg_understanding:
                entry["understandings"].append(progress.avg_understanding)
            entry["percentages"].extend(
                assessment.percentage
                for assessment in progress.assessments
                if assessment.percentage is not None
            )

    return [
        SubjectPerformance(
            subject_id=subject_id,
            percentage=mean2(entry["percentages"]),
            avg_understanding=mean2(entry["understandings"]),
            trend=determine_trend(entry["understandings"]),
        )
        for subject_id, entry in subjects.items()
    ]


def determine_trend(values: Sequence[float]) -> Trend:
    """Classify understanding values (oldest first) as UP, DOWN or STABLE."""
    if len(values) < 2:
        return Trend.STABLE

    recent = values[-TREND_RECENT_WEEKS:]
    older = values[:-TREND_RECENT_WEEKS]
    if not older:
        return Trend.STABLE

    recent_avg = mean2(recent)
    older_avg = mean2(older)
    if recent_avg > older_avg + TREND_DELTA:
        return Trend.UP
    if recent_avg < older_avg - TREND_DELTA:
        return Trend.DOWN
    return Trend.STABLE


def assess_risk(
    attendance_rate: float,
    homework_completion_rate: float,
    behavior_rating: float,
    performance: Sequence[SubjectPerformance],
    attendance_streak: int,
) -> RiskAssessment:
    """Classify a student's risk level from the rolled-up metrics."""
    reasons: list[str] = []
    flagged: list[str] = []

    if attendance_rate < CRITICAL_ATTENDANCE:
        reasons.append("Critically low attendance")
    elif attendance_rate < LOW_ATTENDANCE:
        reasons.append("Low attendance")

    if homework_completion_rate < LOW_HOMEWORK_COMPLETION:
        reasons.append("Low homework completion")
    if behavior_rating < POOR_BEHAVIOR:
        reasons.append("Poor behavior score")
    if attendance_streak == 0:
        reasons.append("Recent absence")

    weak = [s.subject_id for s in performance if _is_weak(s)]
    if weak:
        reasons.append(f"Struggling in {len(weak)} subject(s)")
        flagged = weak

    if len(reasons) >= 3 or attendance_rate < CRITICAL_ATTENDANCE:
        level = RiskLevel.CRITICAL
    elif len(reasons) == 2 or attendance_rate < LOW_ATTENDANCE:
        level = RiskLevel.HIGH
    elif len(reasons) == 1:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return RiskAssessment(
        risk_level=level,
        needs_attention=level != RiskLevel.LOW,
        attention_reasons=reasons,
        intervention_required=level in (RiskLevel.CRITICAL, RiskLevel.HIGH),
        flagged_subjects=flagged,
    )


def _is_weak(performance: SubjectPerformance) -> bool:
    return 0 < performance.avg_understanding < WEAK_THRESHOLD


def _previous_longest_streak(previous: Any) -> int:
    if previous is None:
        return 0
    if isinstance(previous, Mapping):
        value = previous.get("longest_attendance_streak")
    else:
        value = getattr(previous, "longest_attendance_streak", None)
    return int(value or 0)
