"""GPA / CGPA arithmetic.

Every figure is derived from one formula:

    credit_scored = Σ(grade_points × credits)
    total_credit  = Σ(credits × 10)              # the maximum attainable score
    gpa           = credit_scored / total_credit × 10

A straight Σ(points × credits) / Σ(credits) average is not used anywhere; the two only agree
when every subject scores a perfect 10.

Inputs may be entity dataclasses or plain mappings. Missing or ``None`` numeric fields count as 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Sequence, Tuple

MAX_GRADE_POINTS = 10


@dataclass(frozen=True)
class CumulativePoint:
    label: str
    year: int
    cgpa: float


def round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def field_value(item: Any, *names: str, default: Any = None) -> Any:
    for name in names:
        if isinstance(item, dict):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value is not None:
            return value
    return default


def _number(item: Any, *names: str) -> float:
    value = field_value(item, *names, default=0)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def grade_points_of(subject: Any) -> float:
    return _number(subject, "grade_points", "gradePoints")


def credits_of(subject: Any) -> float:
    return _number(subject, "credits")


def subjects_of(semester: Any) -> List[Any]:
    return list(field_value(semester, "subjects", default=[]) or [])


def credit_totals(subjects: Iterable[Any]) -> Tuple[float, float]:
    """Return ``(credit_scored, total_credit)`` for the given subjects."""
    credit_scored = 0.0
    total_credit = 0.0
    for subject in subjects:
        credits = credits_of(subject)
        credit_scored += grade_points_of(subject) * credits
        total_credit += credits * MAX_GRADE_POINTS
    return credit_scored, total_credit


def gpa_from_totals(credit_scored: float, total_credit: float) -> float:
    if total_credit <= 0:
        return 0.0
    return round_half_up((credit_scored / total_credit) * MAX_GRADE_POINTS, 2)


def compute_semester_gpa(subjects: Sequence[Any]) -> float:
    if not subjects:
        return 0.0
    return gpa_from_totals(*credit_totals(subjects))


def compute_cgpa(semesters: Sequence[Any]) -> float:
    all_subjects: List[Any] = []
    for semester in semesters:
        all_subjects.extend(subjects_of(semester))
    return compute_semester_gpa(all_subjects)


def compute_total_credits(subjects: Iterable[Any]) -> float:
    return sum(credits_of(subject) for subject in subjects)


def compute_cumulative_series(semesters: Sequence[Any]) -> List[CumulativePoint]:
    """Running CGPA: entry *i* covers semesters ``0..i`` of the input order and nothing later."""
    series: List[CumulativePoint] = []
    credit_scored = 0.0
    total_credit = 0.0
    for semester in semesters:
        scored, total = credit_totals(subjects_of(semester))
        credit_scored += scored
        total_credit += total
        series.append(
            CumulativePoint(
                label=str(field_value(semester, "name", default="")),
                year=int(_number(semester, "year")),
                cgpa=gpa_from_totals(credit_scored, total_credit),
            )
        )
    return series
