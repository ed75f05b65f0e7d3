# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Weekly progress aggregation.

Pure functions that fold one student's daily activity records for a
week into a WeeklyProgressData aggregate. No database or cache access
happens here; callers load the records and the working-day count.

Usage:
    from src.domains.progress.weekly_calculator import calculate_weekly_progress

    data = calculate_weekly_progress(records, working_days=5)
    print(data.attendance_percentage)
"""

from collections import Counter
from collections.abc import Sequence

from src.domains.progress.utils import mean2, percent2, round2, round_int
from src.models.progress import (
    SKILL_KEYS,
    AssessmentResult,
    AttendanceStatus,
    DailyActivityRecord,
    SubjectAssessment,
    SubjectProgress,
    Trend,
    WeeklyProgressData,
)

STRENGTH_THRESHOLD = 4
WEAKNESS_THRESHOLD = 3


def calculate_weekly_progress(
    records: Sequence[DailyActivityRecord],
    working_days: int,
) -> WeeklyProgressData:
    """Aggregate a week of daily records.

    Args:
        records: Daily activity records of one student within the week.
        working_days: Number of working days in the week.

    Returns:
        Weekly aggregate. An empty record list yields a zero-filled
        aggregate carrying only the working-day count.
    """
    if not records:
        return WeeklyProgressData(total_working_days=working_days)

    attendance = Counter(record.attendance_status for record in records)
    days_present = (
        attendance[AttendanceStatus.PRESENT.value]
        + attendance[AttendanceStatus.LATE.value]
        + attendance[AttendanceStatus.HALF_DAY.value]
    )
    punctual_days = sum(1 for record in records if record.punctuality)

    subject_progress = _subject_progress(records)
    homework = _homework_metrics(records)
    classwork = _classwork_metrics(records)
    assessments = _assessment_summary(records)
    skills = _skills_metrics(records)

    compliant_days = sum(1 for record in records if record.uniform_compliance)

    return WeeklyProgressData(
        total_days_present=days_present,
        total_days_absent=attendance[AttendanceStatus.ABSENT.value],
        total_days_late=attendance[AttendanceStatus.LATE.value],
        total_days_excused=attendance[AttendanceStatus.EXCUSED.value],
        total_holidays=0 if working_days > 7 else 7 - working_days,
        total_working_days=working_days,
        attendance_percentage=percent2(days_present, working_days),
        punctuality_percentage=percent2(punctual_days, len(records)),
        subject_wise_progress=subject_progress,
        homework_assigned_count=homework["assigned"],
        homework_completed_count=homework["completed"],
        homework_completion_rate=homework["completion_rate"],
        average_homework_quality=homework["avg_quality"],
        classwork_completion_rate=classwork["completion_rate"],
        average_classwork_quality=classwork["avg_quality"],
        total_assessments=assessments["total"],
        assessment_results=assessments["results"],
        overall_average_score=assessments["avg_score"],
        average_behavior_score=mean2(r.behavior_rating for r in records if r.behavior_rating),
        average_participation_score=mean2(
            r.participation_level for r in records if r.participation_level
        ),
        average_discipline_score=mean2(r.discipline_score for r in records if r.discipline_score),
        uniform_compliance_rate=percent2(compliant_days, len(records)),
        average_reading_skill=skills["reading"],
        average_writing_skill=skills["writing"],
        average_listening_skill=skills["listening"],
        average_speaking_skill=skills["speaking"],
        average_critical_thinking=skills["critical_thinking"],
        strength_subjects=[
            s.subject_id for s in subject_progress if s.avg_understanding >= STRENGTH_THRESHOLD
        ],
        weak_subjects=[
            s.subject_id
            for s in subject_progress
            if 0 < s.avg_understanding < WEAKNESS_THRESHOLD
        ],
    )


def _subject_progress(records: Sequence[DailyActivityRecord]) -> list[SubjectProgress]:
    """Build per-subject progress in first-seen order.

    An assessment only attaches to a subject that already has an entry
    at the point it is scanned.
    """
    subjects: dict[str, dict] = {}

    for record in records:
        for studied in record.subjects_studied:
            if not studied.subject_id:
                continue
            entry = subjects.setdefault(
                studied.subject_id,
                {"topics_completed": 0, "levels": [], "assessments": []},
            )
            entry["topics_completed"] += len(studied.topics_covered)
            if studied.understanding_level:
                entry["levels"].append(studied.understanding_level)

        for taken in record.assessments_taken:
            if not taken.subject_id or taken.subject_id not in subjects:
                continue
            total = taken.total_marks or 0
            percentage = round_int((taken.marks_obtained or 0) / total * 100) if total > 0 else 0
            subjects[taken.subject_id]["assessments"].append(
                SubjectAssessment(
                    type=taken.type,
                    score=taken.marks_obtained,
                    out_of=taken.total_marks,
                    percentage=percentage,
                )
            )

    return [
        SubjectProgress(
            subject_id=subject_id,
            topics_completed=entry["topics_completed"],
            assessments=entry["assessments"],
            avg_understanding=mean2(entry["levels"]),
            trend=Trend.STABLE,
        )
        for subject_id, entry in subjects.items()
    ]


def _homework_metrics(records: Sequence[DailyActivityRecord]) -> dict:
    assigned = 0
    completed = 0
    qualities: list[float] = []

    for record in records:
        assigned += len(record.homework_assigned)
        completed += sum(1 for item in record.homework_completed if item.is_complete)
        qualities.extend(item.quality for item in record.homework_completed if item.quality)

    return {
        "assigned": assigned,
        "completed": completed,
        "completion_rate": percent2(completed, assigned),
        "avg_quality": mean2(qualities),
    }


def _classwork_metrics(records: Sequence[DailyActivityRecord]) -> dict:
    total = 0
    completed = 0
    qualities: list[float] = []

    for record in records:
        total += len(record.classwork_completed)
        completed += sum(1 for item in record.classwork_completed if item.is_complete)
        qualities.extend(item.quality for item in record.classwork_completed if item.quality)

    return {
        "completion_rate": percent2(completed, total),
        "avg_quality": mean2(qualities),
    }


def _assessment_summary(records: Sequence[DailyActivityRecord]) -> dict:
    per_subject: dict[str | None, dict] = {}
    total_score = 0.0
    total_out_of = 0.0
    count = 0

    for record in records:
        for taken in record.assessments_taken:
            score = taken.marks_obtained or 0
            out_of = taken.total_marks or 0
            count += 1
            total_score += score
            total_out_of += out_of

            entry = per_subject.setdefault(
                taken.subject_id, {"count": 0, "score": 0.0, "out_of": 0.0}
            )
            entry["count"] += 1
            entry["score"] += score
            entry["out_of"] += out_of

    results = [
        AssessmentResult(
            subject_id=subject_id,
            count=entry["count"],
            avg_score=round2(entry["score"] / entry["count"]) if entry["count"] else 0,
            avg_percentage=percent2(entry["score"], entry["out_of"]),
        )
        for subject_id, entry in per_subject.items()
    ]

    return {
        "total": count,
        "results": results,
        "avg_score": percent2(total_score, total_out_of),
    }


def _skills_metrics(records: Sequence[DailyActivityRecord]) -> dict[str, float]:
    """Average each skill over the days that report it."""
    values: dict[str, list[float]] = {key: [] for key in SKILL_KEYS}

    for record in records:
        if record.skills_snapshot is None:
            continue
        for key in SKILL_KEYS:
            level = getattr(record.skills_snapshot, key)
            if level:
                values[key].append(level)

    return {key: mean2(levels) for key, levels in values.items()}
