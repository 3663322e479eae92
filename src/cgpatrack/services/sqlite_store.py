from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from cgpatrack.core.entities import GradeDefinition, Semester, Subject
from cgpatrack.core.errors import ConcurrencyConflict, NotFound, StorageError
from cgpatrack.services.store import GradeStore

logger = logging.getLogger(__name__)

SEMESTER_COLUMNS = {"name": "name", "year": "year", "term": "term", "order": "position"}
SUBJECT_COLUMNS = {
    "name": "name",
    "grade": "grade",
    "grade_points": "grade_points",
    "credits": "credits",
    "order": "position",
}
GRADE_COLUMNS = {
    "name": "name",
    "points": "points",
    "description": "description",
    "min_percentage": "min_percentage",
    "max_percentage": "max_percentage",
    "order": "position",
    "is_default": "is_default",
}


def _new_id() -> str:
    return uuid.uuid4().hex


class SqliteGradeStore(GradeStore):
    def __init__(self, db_path: str = "cgpatrack.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # explicit BEGIN/COMMIT, see transaction()
        self.conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS semesters (
              id TEXT PRIMARY KEY,
              user_id TEXT NOT NULL,
              name TEXT NOT NULL,
              year INTEGER NOT NULL,
              term TEXT,
              gpa REAL NOT NULL DEFAULT 0,
              total_credits REAL NOT NULL DEFAULT 0,
              position INTEGER NOT NULL DEFAULT 0,
              version INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS subjects (
              id TEXT PRIMARY KEY,
              semester_id TEXT NOT NULL,
              name TEXT NOT NULL,
              grade TEXT NOT NULL,
              grade_points REAL NOT NULL,
              credits REAL NOT NULL,
              position INTEGER NOT NULL DEFAULT 0,
              FOREIGN KEY(semester_id) REFERENCES semesters(id)
            );

            CREATE TABLE IF NOT EXISTS grade_configs (
              id TEXT PRIMARY KEY,
              user_id TEXT NOT NULL,
              name TEXT NOT NULL,
              points REAL NOT NULL,
              description TEXT,
              min_percentage REAL,
              max_percentage REAL,
              position INTEGER NOT NULL DEFAULT 0,
              is_default INTEGER NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_semesters_user ON semesters(user_id);
            CREATE INDEX IF NOT EXISTS idx_subjects_semester ON subjects(semester_id);
            CREATE INDEX IF NOT EXISTS idx_grade_configs_user ON grade_configs(user_id);
            """
        )

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator["SqliteGradeStore"]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.conn.rollback()
                raise
            self._depth -= 1
            if outermost:
                self._execute("COMMIT")

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite error: {exc}") from exc

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return list(self._execute(sql, params).fetchall())

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchone()

    def _update(self, table: str, columns: Dict[str, str], row_id: str, changes: Dict[str, Any]) -> None:
        assignments = []
        params: List[Any] = []
        for key, value in changes.items():
            if key not in columns:
                raise StorageError(f"Unknown {table} field: {key}")
            assignments.append(f"{columns[key]}=?")
            params.append(int(value) if key == "is_default" else value)
        if not assignments:
            return
        with self.transaction():
            cur = self._execute(f"UPDATE {table} SET {', '.join(assignments)} WHERE id=?", (*params, row_id))
            if cur.rowcount == 0:
                raise NotFound(f"{table} row {row_id} not found.")

    @staticmethod
    def _to_semester(row: sqlite3.Row) -> Semester:
        return Semester(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            year=int(row["year"]),
            term=row["term"],
            gpa=float(row["gpa"]),
            total_credits=float(row["total_credits"]),
            order=int(row["position"]),
            version=int(row["version"]),
        )

    @staticmethod
    def _to_subject(row: sqlite3.Row) -> Subject:
        return Subject(
            id=row["id"],
            semester_id=row["semester_id"],
            name=row["name"],
            grade=row["grade"],
            grade_points=float(row["grade_points"]),
            credits=float(row["credits"]),
            order=int(row["position"]),
        )

    @staticmethod
    def _to_grade(row: sqlite3.Row) -> GradeDefinition:
        return GradeDefinition(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            points=float(row["points"]),
            description=row["description"],
            min_percentage=row["min_percentage"],
            max_percentage=row["max_percentage"],
            order=int(row["position"]),
            is_default=bool(row["is_default"]),
        )

    def list_semesters(self, user_id: str) -> List[Semester]:
        rows = self._fetchall(
            "SELECT * FROM semesters WHERE user_id=? ORDER BY year, position",
            (user_id,),
        )
        return [self._to_semester(row) for row in rows]

    def get_semester(self, semester_id: str) -> Optional[Semester]:
        row = self._fetchone("SELECT * FROM semesters WHERE id=?", (semester_id,))
        return self._to_semester(row) if row else None

    def create_semester(self, semester: Semester) -> Semester:
        semester.id = semester.id or _new_id()
        with self.transaction():
            self._execute(
                """INSERT INTO semesters(id, user_id, name, year, term, gpa, total_credits, position, version)
                   VALUES(?,?,?,?,?,?,?,?,?)""",
                (
                    semester.id,
                    semester.user_id,
                    semester.name,
                    semester.year,
                    semester.term,
                    semester.gpa,
                    semester.total_credits,
                    semester.order,
                    semester.version,
                ),
            )
        return semester

    def update_semester(self, semester_id: str, changes: Dict[str, Any]) -> Semester:
        self._update("semesters", SEMESTER_COLUMNS, semester_id, changes)
        updated = self.get_semester(semester_id)
        if updated is None:
            raise NotFound("Semester not found.")
        return updated

    def delete_semester(self, semester_id: str) -> None:
        with self.transaction():
            self._execute("DELETE FROM subjects WHERE semester_id=?", (semester_id,))
            self._execute("DELETE FROM semesters WHERE id=?", (semester_id,))

    def persist_semester_aggregate(
        self,
        semester_id: str,
        gpa: float,
        total_credits: float,
        expected_version: int,
    ) -> int:
        with self.transaction():
            cur = self._execute(
                """UPDATE semesters SET gpa=?, total_credits=?, version=version+1
                   WHERE id=? AND version=?""",
                (gpa, total_credits, semester_id, expected_version),
            )
            if cur.rowcount == 0:
                if self.get_semester(semester_id) is None:
                    raise NotFound("Semester not found.")
                raise ConcurrencyConflict(
                    f"Semester {semester_id} changed since version {expected_version} was read."
                )
        return expected_version + 1

    def list_subjects_by_semester(self, semester_id: str) -> List[Subject]:
        rows = self._fetchall(
            "SELECT * FROM subjects WHERE semester_id=? ORDER BY position",
            (semester_id,),
        )
        return [self._to_subject(row) for row in rows]

    def list_subjects_by_grade(self, user_id: str, grade_name: str) -> List[Subject]:
        rows = self._fetchall(
            """SELECT s.* FROM subjects s JOIN semesters m ON m.id=s.semester_id
               WHERE m.user_id=? AND s.grade=?
               ORDER BY m.year, m.position, s.position""",
            (user_id, grade_name),
        )
        return [self._to_subject(row) for row in rows]

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        row = self._fetchone("SELECT * FROM subjects WHERE id=?", (subject_id,))
        return self._to_subject(row) if row else None

    def create_subject(self, subject: Subject) -> Subject:
        subject.id = subject.id or _new_id()
        with self.transaction():
            self._execute(
                """INSERT INTO subjects(id, semester_id, name, grade, grade_points, credits, position)
                   VALUES(?,?,?,?,?,?,?)""",
                (
                    subject.id,
                    subject.semester_id,
                    subject.name,
                    subject.grade,
                    subject.grade_points,
                    subject.credits,
                    subject.order,
                ),
            )
        return subject

    def update_subject(self, subject_id: str, changes: Dict[str, Any]) -> Subject:
        self._update("subjects", SUBJECT_COLUMNS, subject_id, changes)
        updated = self.get_subject(subject_id)
        if updated is None:
            raise NotFound("Subject not found.")
        return updated

    def delete_subject(self, subject_id: str) -> None:
        with self.transaction():
            self._execute("DELETE FROM subjects WHERE id=?", (subject_id,))

    def list_grades_by_user(self, user_id: str) -> List[GradeDefinition]:
        rows = self._fetchall(
            "SELECT * FROM grade_configs WHERE user_id=? ORDER BY position",
            (user_id,),
        )
        return [self._to_grade(row) for row in rows]

    def get_grade_definition(self, grade_id: str) -> Optional[GradeDefinition]:
        row = self._fetchone("SELECT * FROM grade_configs WHERE id=?", (grade_id,))
        return self._to_grade(row) if row else None

    def create_grade_definition(self, definition: GradeDefinition) -> GradeDefinition:
        definition.id = definition.id or _new_id()
        with self.transaction():
            self._execute(
                """INSERT INTO grade_configs(id, user_id, name, points, description,
                                             min_percentage, max_percentage, position, is_default)
                   VALUES(?,?,?,?,?,?,?,?,?)""",
                (
                    definition.id,
                    definition.user_id,
                    definition.name,
                    definition.points,
                    definition.description,
                    definition.min_percentage,
                    definition.max_percentage,
                    definition.order,
                    int(definition.is_default),
                ),
            )
        return definition

    def update_grade_definition(self, grade_id: str, changes: Dict[str, Any]) -> GradeDefinition:
        self._update("grade_configs", GRADE_COLUMNS, grade_id, changes)
        updated = self.get_grade_definition(grade_id)
        if updated is None:
            raise NotFound("Grade not found.")
        return updated

    def delete_grade_definition(self, grade_id: str) -> None:
        with self.transaction():
            self._execute("DELETE FROM grade_configs WHERE id=?", (grade_id,))
