from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cgpatrack.core.gpa import (
    compute_cgpa,
    compute_cumulative_series,
    compute_semester_gpa,
    compute_total_credits,
    field_value,
    grade_points_of,
    round_half_up,
    subjects_of,
)

UNKNOWN_GRADE = "Unknown"


@dataclass(frozen=True)
class SemesterGpa:
    name: str
    year: int
    gpa: float


@dataclass(frozen=True)
class GradeShare:
    grade: str
    count: int
    percentage: float


@dataclass(frozen=True)
class YearlyValue:
    year: int
    value: float


@dataclass
class PerformanceMetrics:
    cgpa: float = 0.0
    total_credits: float = 0.0
    total_subjects: int = 0
    average_credits_per_semester: float = 0.0
    best_semester: Optional[SemesterGpa] = None
    worst_semester: Optional[SemesterGpa] = None


@dataclass
class AnalyticsReport:
    gpa_by_semester: List[SemesterGpa] = field(default_factory=list)
    cgpa_by_semester: List[Dict[str, Any]] = field(default_factory=list)
    gpa_by_year: List[YearlyValue] = field(default_factory=list)
    grade_distribution: List[GradeShare] = field(default_factory=list)
    subjects_by_grade: Dict[str, List[str]] = field(default_factory=dict)
    credits_by_year: List[YearlyValue] = field(default_factory=list)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _grade_label(subject: Any) -> str:
    return str(field_value(subject, "grade", default="") or UNKNOWN_GRADE)


def compute_semester_gpas(semesters: Sequence[Any]) -> List[SemesterGpa]:
    return [
        SemesterGpa(
            name=str(field_value(semester, "name", default="")),
            year=int(field_value(semester, "year", default=0)),
            gpa=compute_semester_gpa(subjects_of(semester)),
        )
        for semester in semesters
    ]


def compute_grade_distribution(subjects: Sequence[Any]) -> List[GradeShare]:
    """Count subjects per grade label, most frequent first.

    Ties keep the order in which each label was first seen.
    """
    total = len(subjects)
    if total == 0:
        return []

    counts: Dict[str, int] = {}
    for subject in subjects:
        label = _grade_label(subject)
        counts[label] = counts.get(label, 0) + 1

    # whole tenths of a percent, leftover tenths go to the largest remainders
    labels = list(counts)
    tenths = {label: counts[label] * 1000 // total for label in labels}
    leftover = 1000 - sum(tenths.values())
    by_remainder = sorted(labels, key=lambda label: counts[label] * 1000 % total, reverse=True)
    for label in by_remainder[:leftover]:
        tenths[label] += 1

    shares = [
        GradeShare(grade=label, count=counts[label], percentage=tenths[label] / 10)
        for label in labels
    ]
    shares.sort(key=lambda share: share.count, reverse=True)
    return shares


def compute_subjects_by_grade(subjects: Sequence[Any]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for subject in subjects:
        names = grouped.setdefault(_grade_label(subject), [])
        name = str(field_value(subject, "name", default=""))
        if name not in names:
            names.append(name)
    return grouped


def compute_yearly_averages(semester_gpas: Sequence[SemesterGpa]) -> List[YearlyValue]:
    """Plain mean of the semester GPAs in each year (not credit weighted)."""
    totals: Dict[int, List[float]] = {}
    for entry in semester_gpas:
        totals.setdefault(entry.year, []).append(entry.gpa)
    return [
        YearlyValue(year=year, value=round_half_up(sum(values) / len(values), 2))
        for year, values in totals.items()
        if values
    ]


def compute_credits_by_year(semesters: Sequence[Any]) -> List[YearlyValue]:
    totals: Dict[int, float] = {}
    for semester in semesters:
        year = int(field_value(semester, "year", default=0))
        totals[year] = totals.get(year, 0.0) + compute_total_credits(subjects_of(semester))
    return [YearlyValue(year=year, value=credits) for year, credits in totals.items()]


def compute_best_worst_semester(
    semester_gpas: Sequence[SemesterGpa],
) -> tuple[Optional[SemesterGpa], Optional[SemesterGpa]]:
    best: Optional[SemesterGpa] = None
    worst: Optional[SemesterGpa] = None
    for entry in semester_gpas:
        # semesters without graded subjects sit at 0 and would always be "worst"
        if entry.gpa <= 0:
            continue
        if best is None or entry.gpa > best.gpa:
            best = entry
        if worst is None or entry.gpa < worst.gpa:
            worst = entry
    return best, worst


def top_subjects(subjects: Sequence[Any], limit: int = 5) -> List[Any]:
    return sorted(subjects, key=grade_points_of, reverse=True)[:limit]


def bottom_subjects(subjects: Sequence[Any], limit: int = 5) -> List[Any]:
    return sorted(subjects, key=grade_points_of)[:limit]


def build_report(semesters: Sequence[Any]) -> AnalyticsReport:
    """Assemble every rollup for semesters given in chronological order."""
    if not semesters:
        return AnalyticsReport()

    all_subjects: List[Any] = []
    for semester in semesters:
        all_subjects.extend(subjects_of(semester))

    semester_gpas = compute_semester_gpas(semesters)
    credits_by_year = compute_credits_by_year(semesters)
    total_credits = sum(entry.value for entry in credits_by_year)
    best, worst = compute_best_worst_semester(semester_gpas)

    return AnalyticsReport(
        gpa_by_semester=semester_gpas,
        cgpa_by_semester=[asdict(point) for point in compute_cumulative_series(semesters)],
        gpa_by_year=compute_yearly_averages(semester_gpas),
        grade_distribution=compute_grade_distribution(all_subjects),
        subjects_by_grade=compute_subjects_by_grade(all_subjects),
        credits_by_year=credits_by_year,
        performance_metrics=PerformanceMetrics(
            cgpa=compute_cgpa(semesters),
            total_credits=total_credits,
            total_subjects=len(all_subjects),
            average_credits_per_semester=round_half_up(total_credits / len(semesters), 2),
            best_semester=best,
            worst_semester=worst,
        ),
    )
