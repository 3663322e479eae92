"""Semester, subject and grade-definition records for one user at a time.

Every subject mutation recomputes the owning semester's cached ``gpa``/``total_credits`` before
returning. Deleting a grade definition that subjects still use moves those subjects to the
highest-points grade left and recomputes each affected semester once.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from cgpatrack.config.settings import settings
from cgpatrack.core.entities import GradeDefinition, Semester, Subject
from cgpatrack.core.errors import ConcurrencyConflict, Conflict, InvariantViolation, NotFound
from cgpatrack.core.gpa import compute_semester_gpa, compute_total_credits
from cgpatrack.core.grades import grade_scale
from cgpatrack.core.validators import (
    GradePayload,
    GradeUpdatePayload,
    SemesterPayload,
    SemesterUpdatePayload,
    SubjectPayload,
    SubjectUpdatePayload,
    changed_fields,
    validate,
)
from cgpatrack.services.store import GradeStore

logger = logging.getLogger(__name__)


def _next_order(items: List[Any]) -> int:
    return max((item.order for item in items), default=-1) + 1


class RecordsService:
    def __init__(
        self,
        store: GradeStore,
        *,
        grade_system: str = "10-point",
        recalc_attempts: int = 3,
    ) -> None:
        grade_scale(grade_system)
        self.store = store
        self.grade_system = grade_system
        self.recalc_attempts = max(1, recalc_attempts)

    @classmethod
    def from_settings(cls, store: GradeStore) -> "RecordsService":
        return cls(
            store,
            grade_system=settings.default_grade_system,
            recalc_attempts=settings.recalc_attempts,
        )

    # ownership lookups

    def _own_semester(self, uid: str, semester_id: str) -> Semester:
        semester = self.store.get_semester(semester_id)
        if semester is None or semester.user_id != uid:
            raise NotFound("Semester not found.")
        return semester

    def _own_subject(self, uid: str, subject_id: str) -> Subject:
        subject = self.store.get_subject(subject_id)
        if subject is None:
            raise NotFound("Subject not found.")
        self._own_semester(uid, subject.semester_id)
        return subject

    def _own_grade(self, uid: str, grade_id: str) -> GradeDefinition:
        definition = self.store.get_grade_definition(grade_id)
        if definition is None or definition.user_id != uid:
            raise NotFound("Grade not found.")
        return definition

    # grade definitions

    def list_grades(self, uid: str) -> List[GradeDefinition]:
        grades = self.store.list_grades_by_user(uid)
        if grades:
            return grades
        self.initialize_default_grades(uid)
        return self.store.list_grades_by_user(uid)

    def initialize_default_grades(self, uid: str, system: Optional[str] = None) -> List[GradeDefinition]:
        """Seed a grade scale for ``uid``.

        The scale is written as-is and skips the duplicate-points check: the stock 10-point
        scale carries both A and B+ at 8 points.
        """
        levels = grade_scale(system or self.grade_system)
        created: List[GradeDefinition] = []
        with self.store.transaction():
            for level in levels:
                created.append(
                    self.store.create_grade_definition(
                        GradeDefinition(
                            id="",
                            user_id=uid,
                            name=level.name,
                            points=level.points,
                            order=level.order,
                            is_default=True,
                        )
                    )
                )
        logger.info("Seeded %d default grades for user %s", len(created), uid)
        return created

    def _ensure_unique_points(self, uid: str, points: float, exclude_id: str = "") -> None:
        for definition in self.store.list_grades_by_user(uid):
            if definition.id != exclude_id and definition.points == points:
                raise Conflict(f"Grade '{definition.name}' already uses {points:g} points.")

    def _ensure_unique_name(self, uid: str, name: str, exclude_id: str = "") -> None:
        for definition in self.store.list_grades_by_user(uid):
            if definition.id != exclude_id and definition.name == name:
                raise Conflict(f"Grade '{name}' already exists.")

    def create_grade(self, uid: str, data: Dict[str, Any]) -> GradeDefinition:
        payload = validate(GradePayload, data)
        self._ensure_unique_name(uid, payload.name)
        self._ensure_unique_points(uid, payload.points)
        return self.store.create_grade_definition(
            GradeDefinition(
                id="",
                user_id=uid,
                name=payload.name,
                points=payload.points,
                description=payload.description,
                min_percentage=payload.min_percentage,
                max_percentage=payload.max_percentage,
                order=_next_order(self.store.list_grades_by_user(uid)),
                is_default=False,
            )
        )

    def update_grade(self, uid: str, grade_id: str, data: Dict[str, Any]) -> GradeDefinition:
        """Edit a grade definition.

        Subjects keep their ``grade_points`` snapshot; a points edit is not pushed to them.
        """
        changes = changed_fields(
            validate(GradeUpdatePayload, data),
            nullable=("description", "min_percentage", "max_percentage"),
        )
        definition = self._own_grade(uid, grade_id)
        if changes.get("name") is not None:
            self._ensure_unique_name(uid, changes["name"], exclude_id=grade_id)
        if changes.get("points") is not None:
            self._ensure_unique_points(uid, changes["points"], exclude_id=grade_id)
        if not changes:
            return definition
        return self.store.update_grade_definition(grade_id, changes)

    @staticmethod
    def _highest_points(grades: List[GradeDefinition]) -> Optional[GradeDefinition]:
        best: Optional[GradeDefinition] = None
        for definition in grades:
            if best is None or definition.points > best.points:
                best = definition
        return best

    def delete_grade(self, uid: str, grade_id: str) -> Optional[GradeDefinition]:
        """Delete a grade definition, reassigning the subjects that use it.

        Returns the replacement grade, or ``None`` when nothing depended on the deleted one.
        Raises ``InvariantViolation`` when it is the user's only grade.
        """
        definition = self._own_grade(uid, grade_id)
        remaining = [grade for grade in self.store.list_grades_by_user(uid) if grade.id != grade_id]
        if not remaining:
            raise InvariantViolation("Cannot delete the only grade in your system.")

        dependents = self.store.list_subjects_by_grade(uid, definition.name)
        if not dependents:
            self.store.delete_grade_definition(grade_id)
            logger.info("Deleted unused grade %s (%s) for user %s", grade_id, definition.name, uid)
            return None

        replacement = self._highest_points(remaining)

        affected_semesters = list(dict.fromkeys(subject.semester_id for subject in dependents))
        with self.store.transaction():
            for subject in dependents:
                self.store.replace_subject_grade(subject.id, replacement.name, replacement.points)
            for semester_id in affected_semesters:
                self.recalculate_semester(semester_id)
            self.store.delete_grade_definition(grade_id)

        logger.info(
            "Deleted grade %s (%s); reassigned %d subjects in %d semesters to %s",
            grade_id,
            definition.name,
            len(dependents),
            len(affected_semesters),
            replacement.name,
        )
        return replacement

    def reset_to_default_grades(self, uid: str) -> List[GradeDefinition]:
        """Drop every custom grade; subjects using one move to the best grade still present."""
        grades = self.store.list_grades_by_user(uid)
        if not any(grade.is_default for grade in grades):
            self.initialize_default_grades(uid)
        for grade in grades:
            if not grade.is_default:
                self.delete_grade(uid, grade.id)
        return self.store.list_grades_by_user(uid)

    # semesters

    def _with_subjects(self, semester: Semester) -> Semester:
        semester.subjects = self.store.list_subjects_by_semester(semester.id)
        return semester

    def list_semesters(self, uid: str, *, chronological: bool = False) -> List[Semester]:
        """Semesters with subjects; newest year first unless ``chronological``."""
        semesters = [self._with_subjects(semester) for semester in self.store.list_semesters(uid)]
        if chronological:
            return semesters
        return sorted(semesters, key=lambda semester: (-semester.year, semester.order))

    def get_semester(self, uid: str, semester_id: str) -> Semester:
        return self._with_subjects(self._own_semester(uid, semester_id))

    def create_semester(self, uid: str, data: Dict[str, Any]) -> Semester:
        payload = validate(SemesterPayload, data)
        return self.store.create_semester(
            Semester(
                id="",
                user_id=uid,
                name=payload.name,
                year=payload.year,
                term=payload.term,
                gpa=0.0,
                total_credits=0.0,
                order=_next_order(self.store.list_semesters(uid)),
            )
        )

    def update_semester(self, uid: str, semester_id: str, data: Dict[str, Any]) -> Semester:
        changes = changed_fields(validate(SemesterUpdatePayload, data), nullable=("term",))
        semester = self._own_semester(uid, semester_id)
        if not changes:
            return self._with_subjects(semester)
        return self._with_subjects(self.store.update_semester(semester_id, changes))

    def delete_semester(self, uid: str, semester_id: str) -> None:
        self._own_semester(uid, semester_id)
        self.store.delete_semester(semester_id)
        logger.info("Deleted semester %s for user %s", semester_id, uid)

    def recalculate_semester(self, semester_id: str) -> Semester:
        """Recompute and store a semester's cached GPA and credits from its current subjects."""
        attempt = 0
        while True:
            attempt += 1
            semester = self.store.get_semester(semester_id)
            if semester is None:
                raise NotFound("Semester not found.")
            subjects = self.store.list_subjects_by_semester(semester_id)
            gpa = compute_semester_gpa(subjects)
            total_credits = compute_total_credits(subjects)
            try:
                semester.version = self.store.persist_semester_aggregate(
                    semester_id, gpa, total_credits, expected_version=semester.version
                )
            except ConcurrencyConflict:
                if attempt >= self.recalc_attempts:
                    raise
                logger.warning(
                    "Semester %s changed during recalculation, retrying (%d/%d)",
                    semester_id,
                    attempt,
                    self.recalc_attempts,
                )
                continue
            semester.gpa = gpa
            semester.total_credits = total_credits
            semester.subjects = subjects
            logger.debug("Semester %s: gpa=%s credits=%s", semester_id, gpa, total_credits)
            return semester

    # subjects

    def _resolve_grade(self, uid: str, grade_name: str) -> GradeDefinition:
        for definition in self.list_grades(uid):
            if definition.name == grade_name:
                return definition
        raise NotFound(f"Grade '{grade_name}' is not defined.")

    def list_subjects(self, uid: str, semester_id: str) -> List[Subject]:
        self._own_semester(uid, semester_id)
        return self.store.list_subjects_by_semester(semester_id)

    def create_subject(self, uid: str, semester_id: str, data: Dict[str, Any]) -> Subject:
        return self.bulk_create_subjects(uid, semester_id, [data])[0]

    def bulk_create_subjects(self, uid: str, semester_id: str, items: List[Dict[str, Any]]) -> List[Subject]:
        payloads = [validate(SubjectPayload, item) for item in items]
        self._own_semester(uid, semester_id)
        resolved = [self._resolve_grade(uid, payload.grade) for payload in payloads]

        order = _next_order(self.store.list_subjects_by_semester(semester_id))
        created: List[Subject] = []
        with self.store.transaction():
            for payload, definition in zip(payloads, resolved):
                created.append(
                    self.store.create_subject(
                        Subject(
                            id="",
                            semester_id=semester_id,
                            name=payload.name,
                            grade=definition.name,
                            grade_points=definition.points,
                            credits=payload.credits,
                            order=order,
                        )
                    )
                )
                order += 1
            if created:
                self.recalculate_semester(semester_id)
        return created

    def update_subject(self, uid: str, subject_id: str, data: Dict[str, Any]) -> Subject:
        changes = changed_fields(validate(SubjectUpdatePayload, data))
        subject = self._own_subject(uid, subject_id)
        if not changes:
            return subject
        if "grade" in changes:
            definition = self._resolve_grade(uid, changes["grade"])
            changes["grade_points"] = definition.points
        with self.store.transaction():
            updated = self.store.update_subject(subject_id, changes)
            self.recalculate_semester(subject.semester_id)
        return updated

    def delete_subject(self, uid: str, subject_id: str) -> None:
        subject = self._own_subject(uid, subject_id)
        with self.store.transaction():
            self.store.delete_subject(subject_id)
            self.recalculate_semester(subject.semester_id)
