from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases

from cgpatrack.config.settings import settings
from cgpatrack.core.entities import GradeDefinition, Semester, Subject
from cgpatrack.core.errors import ConcurrencyConflict, NotFound, StorageError
from cgpatrack.services.store import GradeStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
# Appwrite rejects a query with more values than this
QUERY_VALUES_LIMIT = 100

SEMESTER_FIELDS = ("name", "year", "term", "order")
SUBJECT_FIELDS = ("name", "grade", "grade_points", "credits", "order")
GRADE_FIELDS = ("name", "points", "description", "min_percentage", "max_percentage", "order", "is_default")


class AppwriteGradeStore(GradeStore):
    """Grade store backed by Appwrite collections.

    Appwrite has no multi-document transaction, so ``transaction()`` keeps an undo journal of
    every write and replays it in reverse when the block raises.
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        semesters_collection_id: str,
        subjects_collection_id: str,
        grades_collection_id: str,
        databases: Optional[Databases] = None,
    ) -> None:
        if databases is None:
            if not endpoint:
                raise StorageError("Missing APPWRITE_ENDPOINT in environment")
            if not project_id:
                raise StorageError("Missing APPWRITE_PROJECT_ID in environment")
            if not api_key:
                raise StorageError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise StorageError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.semesters_collection_id = semesters_collection_id
        self.subjects_collection_id = subjects_collection_id
        self.grades_collection_id = grades_collection_id

        if databases is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            databases = Databases(client)
        self.db = databases

        self._journal: Optional[List[Callable[[], None]]] = None

    @classmethod
    def from_settings(cls) -> "AppwriteGradeStore":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            semesters_collection_id=settings.appwrite_semesters_collection_id,
            subjects_collection_id=settings.appwrite_subjects_collection_id,
            grades_collection_id=settings.appwrite_grades_collection_id,
        )

    @contextmanager
    def transaction(self) -> Iterator["AppwriteGradeStore"]:
        if self._journal is not None:
            yield self
            return

        self._journal = []
        try:
            yield self
        except BaseException:
            journal, self._journal = self._journal, None
            self._compensate(journal)
            raise
        self._journal = None

    def _compensate(self, journal: List[Callable[[], None]]) -> None:
        for undo in reversed(journal):
            try:
                undo()
            except Exception:
                # keep undoing the rest, the caller still receives the original error
                logger.exception("Failed to roll back an Appwrite write")

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    @staticmethod
    def _is_missing(exc: AppwriteException) -> bool:
        return getattr(exc, "code", None) == 404

    def _list_documents(self, collection_id: str, queries: List[str]) -> List[Dict]:
        documents: List[Dict] = []
        offset = 0
        while True:
            try:
                result = self.db.list_documents(
                    self.database_id,
                    collection_id,
                    queries=[*queries, Query.limit(PAGE_SIZE), Query.offset(offset)],
                )
            except AppwriteException as exc:
                raise StorageError(str(exc)) from exc
            page = list(result.get("documents", []))
            documents.extend(page)
            if len(page) < PAGE_SIZE:
                return documents
            offset += PAGE_SIZE

    def _get_document(self, collection_id: str, document_id: str) -> Optional[Dict]:
        try:
            return self.db.get_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            if self._is_missing(exc):
                return None
            raise StorageError(str(exc)) from exc

    def _create_document(self, collection_id: str, data: Dict, document_id: Optional[str] = None) -> Dict:
        try:
            doc = self.db.create_document(
                self.database_id,
                collection_id,
                document_id or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            raise StorageError(str(exc)) from exc
        self._record(lambda: self._raw_delete(collection_id, doc["$id"]))
        return doc

    def _update_document(self, collection_id: str, document_id: str, data: Dict) -> Dict:
        before = self._get_document(collection_id, document_id) if self._journal is not None else None
        try:
            doc = self.db.update_document(self.database_id, collection_id, document_id, data)
        except AppwriteException as exc:
            if self._is_missing(exc):
                raise NotFound(f"Document {document_id} not found.") from exc
            raise StorageError(str(exc)) from exc
        if before is not None:
            previous = {key: before.get(key) for key in data}
            self._record(lambda: self.db.update_document(self.database_id, collection_id, document_id, previous))
        return doc

    def _delete_document(self, collection_id: str, document_id: str) -> None:
        before = self._get_document(collection_id, document_id) if self._journal is not None else None
        self._raw_delete(collection_id, document_id)
        if before is not None:
            data = {key: value for key, value in before.items() if not key.startswith("$")}
            self._record(
                lambda: self.db.create_document(self.database_id, collection_id, document_id, data)
            )

    def _raw_delete(self, collection_id: str, document_id: str) -> None:
        try:
            self.db.delete_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            if self._is_missing(exc):
                return
            raise StorageError(str(exc)) from exc

    @staticmethod
    def _to_semester(doc: Dict) -> Semester:
        return Semester(
            id=doc["$id"],
            user_id=doc.get("user_id", ""),
            name=doc.get("name", ""),
            year=int(doc.get("year") or 0),
            term=doc.get("term"),
            gpa=float(doc.get("gpa") or 0),
            total_credits=float(doc.get("total_credits") or 0),
            order=int(doc.get("order") or 0),
            version=int(doc.get("version") or 0),
        )

    @staticmethod
    def _to_subject(doc: Dict) -> Subject:
        return Subject(
            id=doc["$id"],
            semester_id=doc.get("semester_id", ""),
            name=doc.get("name", ""),
            grade=doc.get("grade", ""),
            grade_points=float(doc.get("grade_points") or 0),
            credits=float(doc.get("credits") or 0),
            order=int(doc.get("order") or 0),
        )

    @staticmethod
    def _to_grade(doc: Dict) -> GradeDefinition:
        return GradeDefinition(
            id=doc["$id"],
            user_id=doc.get("user_id", ""),
            name=doc.get("name", ""),
            points=float(doc.get("points") or 0),
            description=doc.get("description"),
            min_percentage=doc.get("min_percentage"),
            max_percentage=doc.get("max_percentage"),
            order=int(doc.get("order") or 0),
            is_default=bool(doc.get("is_default")),
        )

    @staticmethod
    def _pick(changes: Dict[str, Any], allowed: tuple) -> Dict[str, Any]:
        unknown = [key for key in changes if key not in allowed]
        if unknown:
            raise StorageError(f"Unknown fields: {', '.join(unknown)}")
        return dict(changes)

    def list_semesters(self, user_id: str) -> List[Semester]:
        docs = self._list_documents(
            self.semesters_collection_id,
            [
                Query.equal("user_id", [user_id]),
                Query.order_asc("year"),
                Query.order_asc("order"),
            ],
        )
        return [self._to_semester(doc) for doc in docs]

    def get_semester(self, semester_id: str) -> Optional[Semester]:
        doc = self._get_document(self.semesters_collection_id, semester_id)
        return self._to_semester(doc) if doc else None

    def create_semester(self, semester: Semester) -> Semester:
        doc = self._create_document(
            self.semesters_collection_id,
            {
                "user_id": semester.user_id,
                "name": semester.name,
                "year": semester.year,
                "term": semester.term,
                "gpa": semester.gpa,
                "total_credits": semester.total_credits,
                "order": semester.order,
                "version": semester.version,
            },
            document_id=semester.id or None,
        )
        return self._to_semester(doc)

    def update_semester(self, semester_id: str, changes: Dict[str, Any]) -> Semester:
        doc = self._update_document(
            self.semesters_collection_id,
            semester_id,
            self._pick(changes, SEMESTER_FIELDS),
        )
        return self._to_semester(doc)

    def delete_semester(self, semester_id: str) -> None:
        with self.transaction():
            for subject in self.list_subjects_by_semester(semester_id):
                self._delete_document(self.subjects_collection_id, subject.id)
            self._delete_document(self.semesters_collection_id, semester_id)

    def persist_semester_aggregate(
        self,
        semester_id: str,
        gpa: float,
        total_credits: float,
        expected_version: int,
    ) -> int:
        # no compare-and-swap in Appwrite: the version check and the write are separate calls
        current = self.get_semester(semester_id)
        if current is None:
            raise NotFound("Semester not found.")
        if current.version != expected_version:
            raise ConcurrencyConflict(
                f"Semester {semester_id} changed since version {expected_version} was read."
            )
        new_version = expected_version + 1
        self._update_document(
            self.semesters_collection_id,
            semester_id,
            {"gpa": gpa, "total_credits": total_credits, "version": new_version},
        )
        return new_version

    def list_subjects_by_semester(self, semester_id: str) -> List[Subject]:
        docs = self._list_documents(
            self.subjects_collection_id,
            [
                Query.equal("semester_id", [semester_id]),
                Query.order_asc("order"),
            ],
        )
        return [self._to_subject(doc) for doc in docs]

    def list_subjects_by_grade(self, user_id: str, grade_name: str) -> List[Subject]:
        semester_ids = [semester.id for semester in self.list_semesters(user_id)]
        docs: List[Dict] = []
        for start in range(0, len(semester_ids), QUERY_VALUES_LIMIT):
            docs.extend(
                self._list_documents(
                    self.subjects_collection_id,
                    [
                        Query.equal("semester_id", semester_ids[start : start + QUERY_VALUES_LIMIT]),
                        Query.equal("grade", [grade_name]),
                    ],
                )
            )
        return [self._to_subject(doc) for doc in docs]

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        doc = self._get_document(self.subjects_collection_id, subject_id)
        return self._to_subject(doc) if doc else None

    def create_subject(self, subject: Subject) -> Subject:
        doc = self._create_document(
            self.subjects_collection_id,
            {
                "semester_id": subject.semester_id,
                "name": subject.name,
                "grade": subject.grade,
                "grade_points": subject.grade_points,
                "credits": subject.credits,
                "order": subject.order,
            },
            document_id=subject.id or None,
        )
        return self._to_subject(doc)

    def update_subject(self, subject_id: str, changes: Dict[str, Any]) -> Subject:
        doc = self._update_document(
            self.subjects_collection_id,
            subject_id,
            self._pick(changes, SUBJECT_FIELDS),
        )
        return self._to_subject(doc)

    def delete_subject(self, subject_id: str) -> None:
        self._delete_document(self.subjects_collection_id, subject_id)

    def list_grades_by_user(self, user_id: str) -> List[GradeDefinition]:
        docs = self._list_documents(
            self.grades_collection_id,
            [
                Query.equal("user_id", [user_id]),
                Query.order_asc("order"),
            ],
        )
        return [self._to_grade(doc) for doc in docs]

    def get_grade_definition(self, grade_id: str) -> Optional[GradeDefinition]:
        doc = self._get_document(self.grades_collection_id, grade_id)
        return self._to_grade(doc) if doc else None

    def create_grade_definition(self, definition: GradeDefinition) -> GradeDefinition:
        doc = self._create_document(
            self.grades_collection_id,
            {
                "user_id": definition.user_id,
                "name": definition.name,
                "points": definition.points,
                "description": definition.description,
                "min_percentage": definition.min_percentage,
                "max_percentage": definition.max_percentage,
                "order": definition.order,
                "is_default": definition.is_default,
            },
            document_id=definition.id or None,
        )
        return self._to_grade(doc)

    def update_grade_definition(self, grade_id: str, changes: Dict[str, Any]) -> GradeDefinition:
        doc = self._update_document(
            self.grades_collection_id,
            grade_id,
            self._pick(changes, GRADE_FIELDS),
        )
        return self._to_grade(doc)

    def delete_grade_definition(self, grade_id: str) -> None:
        self._delete_document(self.grades_collection_id, grade_id)
