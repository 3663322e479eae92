"""Persistence boundary used by the records service.

Implementations raise ``StorageError`` for backend failures and never persist half of a single
call. Writes made inside ``transaction()`` are committed together or not at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, List, Optional

from cgpatrack.core.entities import GradeDefinition, Semester, Subject


class GradeStore(ABC):
    @abstractmethod
    def transaction(self) -> ContextManager["GradeStore"]:
        ...

    # semesters

    @abstractmethod
    def list_semesters(self, user_id: str) -> List[Semester]:
        """Semesters of a user in chronological order (year, then order), without subjects."""

    @abstractmethod
    def get_semester(self, semester_id: str) -> Optional[Semester]:
        ...

    @abstractmethod
    def create_semester(self, semester: Semester) -> Semester:
        ...

    @abstractmethod
    def update_semester(self, semester_id: str, changes: Dict[str, Any]) -> Semester:
        ...

    @abstractmethod
    def delete_semester(self, semester_id: str) -> None:
        """Delete a semester together with its subjects."""

    @abstractmethod
    def persist_semester_aggregate(
        self,
        semester_id: str,
        gpa: float,
        total_credits: float,
        expected_version: int,
    ) -> int:
        """Write the cached GPA/credits if the stored version still equals ``expected_version``.

        Returns the new version. Raises ``ConcurrencyConflict`` when the version moved.
        """

    # subjects

    @abstractmethod
    def list_subjects_by_semester(self, semester_id: str) -> List[Subject]:
        ...

    @abstractmethod
    def list_subjects_by_grade(self, user_id: str, grade_name: str) -> List[Subject]:
        ...

    @abstractmethod
    def get_subject(self, subject_id: str) -> Optional[Subject]:
        ...

    @abstractmethod
    def create_subject(self, subject: Subject) -> Subject:
        ...

    @abstractmethod
    def update_subject(self, subject_id: str, changes: Dict[str, Any]) -> Subject:
        ...

    @abstractmethod
    def delete_subject(self, subject_id: str) -> None:
        ...

    def replace_subject_grade(self, subject_id: str, grade: str, grade_points: float) -> None:
        self.update_subject(subject_id, {"grade": grade, "grade_points": grade_points})

    # grade definitions

    @abstractmethod
    def list_grades_by_user(self, user_id: str) -> List[GradeDefinition]:
        ...

    @abstractmethod
    def get_grade_definition(self, grade_id: str) -> Optional[GradeDefinition]:
        ...

    @abstractmethod
    def create_grade_definition(self, definition: GradeDefinition) -> GradeDefinition:
        ...

    @abstractmethod
    def update_grade_definition(self, grade_id: str, changes: Dict[str, Any]) -> GradeDefinition:
        ...

    @abstractmethod
    def delete_grade_definition(self, grade_id: str) -> None:
        ...
