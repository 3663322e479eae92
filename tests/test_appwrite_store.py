import unittest
from unittest import mock

from appwrite.exception import AppwriteException

from cgpatrack.core.errors import ConcurrencyConflict, StorageError
from cgpatrack.services.appwrite_service import PAGE_SIZE, QUERY_VALUES_LIMIT, AppwriteGradeStore


def make_store(db):
    return AppwriteGradeStore(
        endpoint="",
        project_id="",
        api_key="",
        database_id="db",
        semesters_collection_id="semesters",
        subjects_collection_id="subjects",
        grades_collection_id="grade_configs",
        databases=db,
    )


class AppwriteStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = mock.MagicMock()
        self.store = make_store(self.db)

    def test_requires_credentials_without_injected_client(self):
        with self.assertRaises(StorageError):
            AppwriteGradeStore("", "p", "k", "db", "semesters", "subjects", "grade_configs")

    def test_missing_document_reads_as_none(self):
        self.db.get_document.side_effect = AppwriteException("Document not found", 404)
        self.assertIsNone(self.store.get_semester("missing"))

    def test_backend_errors_become_storage_errors(self):
        self.db.list_documents.side_effect = AppwriteException("Unauthorized", 401)
        with self.assertRaises(StorageError):
            self.store.list_grades_by_user("u1")

    def test_listing_walks_every_page(self):
        first = [{"$id": f"g{i}", "name": "A", "points": 8} for i in range(PAGE_SIZE)]
        second = [{"$id": "last", "name": "B", "points": 7}]
        self.db.list_documents.side_effect = [{"documents": first}, {"documents": second}]
        grades = self.store.list_grades_by_user("u1")
        self.assertEqual(len(grades), PAGE_SIZE + 1)
        self.assertEqual(self.db.list_documents.call_count, 2)

    def test_subjects_by_grade_batches_semester_ids(self):
        semesters = [{"$id": f"s{i}", "user_id": "u1", "name": f"S{i}", "year": 2024} for i in range(150)]
        self.db.list_documents.side_effect = [
            {"documents": semesters[:PAGE_SIZE]},
            {"documents": semesters[PAGE_SIZE:]},
            {"documents": [{"$id": "m1", "semester_id": "s3", "grade": "A"}]},
            {"documents": [{"$id": "m2", "semester_id": "s120", "grade": "A"}]},
        ]

        subjects = self.store.list_subjects_by_grade("u1", "A")

        self.assertEqual([s.id for s in subjects], ["m1", "m2"])
        self.assertEqual(self.db.list_documents.call_count, 4)
        first_batch = self.db.list_documents.call_args_list[2].kwargs["queries"][0]
        second_batch = self.db.list_documents.call_args_list[3].kwargs["queries"][0]
        self.assertIn('"s99"', first_batch)
        self.assertNotIn(f'"s{QUERY_VALUES_LIMIT}"', first_batch)
        self.assertIn('"s149"', second_batch)

    def test_subjects_by_grade_without_semesters(self):
        self.db.list_documents.return_value = {"documents": []}
        self.assertEqual(self.store.list_subjects_by_grade("u1", "A"), [])
        self.assertEqual(self.db.list_documents.call_count, 1)

    def test_stale_version_is_rejected(self):
        self.db.get_document.return_value = {"$id": "s1", "user_id": "u1", "name": "S1", "year": 2024, "version": 2}
        with self.assertRaises(ConcurrencyConflict):
            self.store.persist_semester_aggregate("s1", 8.0, 3, expected_version=1)
        self.db.update_document.assert_not_called()

    def test_aggregate_write_bumps_version(self):
        self.db.get_document.return_value = {"$id": "s1", "user_id": "u1", "name": "S1", "year": 2024, "version": 1}
        self.assertEqual(self.store.persist_semester_aggregate("s1", 8.0, 3, expected_version=1), 2)
        self.db.update_document.assert_called_once_with(
            "db", "semesters", "s1", {"gpa": 8.0, "total_credits": 3, "version": 2}
        )

    def test_failed_transaction_replays_undo_journal(self):
        self.db.get_document.return_value = {
            "$id": "sub1",
            "$createdAt": "2024-01-01T00:00:00.000+00:00",
            "semester_id": "s1",
            "name": "Maths",
            "grade": "A",
            "grade_points": 8,
            "credits": 3,
            "order": 0,
        }
        self.db.update_document.return_value = dict(self.db.get_document.return_value, grade="O", grade_points=10)

        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.replace_subject_grade("sub1", "O", 10)
                self.store.delete_grade_definition("g1")
                raise RuntimeError("boom")

        self.db.create_document.assert_called_once()
        recreated = self.db.create_document.call_args[0]
        self.assertEqual(recreated[:3], ("db", "grade_configs", "g1"))
        self.assertNotIn("$id", recreated[3])
        self.assertEqual(
            self.db.update_document.call_args_list[-1],
            mock.call("db", "subjects", "sub1", {"grade": "A", "grade_points": 8}),
        )

    def test_successful_transaction_keeps_writes(self):
        self.db.get_document.return_value = {"$id": "sub1", "grade": "A", "grade_points": 8}
        self.db.update_document.return_value = {"$id": "sub1", "grade": "O", "grade_points": 10}
        with self.store.transaction():
            self.store.replace_subject_grade("sub1", "O", 10)
        self.assertEqual(self.db.update_document.call_count, 1)


if __name__ == "__main__":
    unittest.main()
