import unittest

from cgpatrack.core.entities import Semester, Subject
from cgpatrack.core.errors import ConcurrencyConflict, NotFound, StorageError
from cgpatrack.services.sqlite_store import SqliteGradeStore


class SqliteStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = SqliteGradeStore(":memory:")
        self.addCleanup(self.store.close)
        self.semester = self.store.create_semester(Semester(id="", user_id="u1", name="S1", year=2024))

    def add_subject(self, name, grade="A", semester_id=None):
        return self.store.create_subject(
            Subject(
                id="",
                semester_id=semester_id or self.semester.id,
                name=name,
                grade=grade,
                grade_points=8,
                credits=3,
            )
        )

    def test_aggregate_write_bumps_version(self):
        version = self.store.persist_semester_aggregate(self.semester.id, 8.2, 10, expected_version=0)
        self.assertEqual(version, 1)
        stored = self.store.get_semester(self.semester.id)
        self.assertEqual((stored.gpa, stored.total_credits, stored.version), (8.2, 10, 1))

    def test_stale_aggregate_write_is_rejected(self):
        self.store.persist_semester_aggregate(self.semester.id, 8.2, 10, expected_version=0)
        with self.assertRaises(ConcurrencyConflict):
            self.store.persist_semester_aggregate(self.semester.id, 5.0, 3, expected_version=0)
        self.assertEqual(self.store.get_semester(self.semester.id).gpa, 8.2)

    def test_aggregate_write_for_missing_semester(self):
        with self.assertRaises(NotFound):
            self.store.persist_semester_aggregate("missing", 1.0, 1, expected_version=0)

    def test_transaction_rolls_back_every_write(self):
        subject = self.add_subject("Maths")
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.replace_subject_grade(subject.id, "O", 10)
                self.add_subject("Physics")
                raise RuntimeError("boom")
        self.assertEqual([s.name for s in self.store.list_subjects_by_semester(self.semester.id)], ["Maths"])
        self.assertEqual(self.store.get_subject(subject.id).grade, "A")

    def test_unknown_update_field(self):
        subject = self.add_subject("Maths")
        with self.assertRaises(StorageError):
            self.store.update_subject(subject.id, {"colour": "red"})

    def test_update_missing_row(self):
        with self.assertRaises(NotFound):
            self.store.update_semester("missing", {"name": "x"})

    def test_subjects_by_grade_are_scoped_to_user(self):
        other = self.store.create_semester(Semester(id="", user_id="u2", name="S1", year=2024))
        self.add_subject("Maths")
        self.add_subject("Physics", semester_id=other.id)
        self.add_subject("Chemistry", grade="B")
        self.assertEqual([s.name for s in self.store.list_subjects_by_grade("u1", "A")], ["Maths"])

    def test_delete_semester_cascades(self):
        self.add_subject("Maths")
        self.store.delete_semester(self.semester.id)
        self.assertIsNone(self.store.get_semester(self.semester.id))
        self.assertEqual(self.store.list_subjects_by_semester(self.semester.id), [])


if __name__ == "__main__":
    unittest.main()
