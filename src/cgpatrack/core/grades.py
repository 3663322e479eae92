from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class GradeLevel:
    name: str
    points: float
    order: int


GRADE_SYSTEMS: Dict[str, Tuple[GradeLevel, ...]] = {
    "10-point": (
        GradeLevel("O", 10, 0),
        GradeLevel("A+", 9, 1),
        GradeLevel("A", 8, 2),
        GradeLevel("B+", 8, 3),
        GradeLevel("B", 7, 4),
        GradeLevel("C+", 6, 5),
        GradeLevel("C", 5, 6),
        GradeLevel("U", 0, 7),
    ),
    "4-point": (
        GradeLevel("A", 4.0, 0),
        GradeLevel("A-", 3.7, 1),
        GradeLevel("B+", 3.3, 2),
        GradeLevel("B", 3.0, 3),
        GradeLevel("B-", 2.7, 4),
        GradeLevel("C+", 2.3, 5),
        GradeLevel("C", 2.0, 6),
        GradeLevel("D", 1.0, 7),
        GradeLevel("F", 0, 8),
    ),
}

DEFAULT_GRADE_SYSTEM = "10-point"

TERMS = ("fall", "spring", "summer", "winter")

CREDIT_OPTIONS: List[float] = [step / 2 for step in range(1, 21)]


@dataclass(frozen=True)
class PerformanceLevel:
    level: str
    description: str


PERFORMANCE_LEVELS: List[Tuple[float, PerformanceLevel]] = [
    (8.5, PerformanceLevel("Excellent", "Outstanding performance")),
    (7.0, PerformanceLevel("Good", "Strong performance")),
    (6.0, PerformanceLevel("Average", "Satisfactory performance")),
]

BELOW_AVERAGE = PerformanceLevel("Below Average", "Needs improvement")


def grade_scale(system: str) -> Tuple[GradeLevel, ...]:
    try:
        return GRADE_SYSTEMS[system]
    except KeyError as exc:
        raise ValueError(f"Unsupported grade system: {system}. Use 10-point or 4-point.") from exc


def performance_level(gpa: float) -> PerformanceLevel:
    for threshold, level in PERFORMANCE_LEVELS:
        if gpa >= threshold:
            return level
    return BELOW_AVERAGE
