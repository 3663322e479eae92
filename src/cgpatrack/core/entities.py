from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GradeDefinition:
    id: str
    user_id: str
    name: str
    points: float
    description: str | None = None
    min_percentage: float | None = None
    max_percentage: float | None = None
    order: int = 0
    is_default: bool = False


@dataclass
class Subject:
    id: str
    semester_id: str
    name: str
    grade: str
    # snapshot of the grade definition's points when the grade was assigned
    grade_points: float
    credits: float
    order: int = 0


@dataclass
class Semester:
    id: str
    user_id: str
    name: str
    year: int
    term: str | None = None
    gpa: float = 0.0
    total_credits: float = 0.0
    order: int = 0
    version: int = 0
    subjects: list[Subject] = field(default_factory=list)
