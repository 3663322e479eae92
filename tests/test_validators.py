import unittest

from cgpatrack.core.errors import ValidationError
from cgpatrack.core.grades import CREDIT_OPTIONS, TERMS
from cgpatrack.core.validators import (
    GradePayload,
    SemesterPayload,
    SemesterUpdatePayload,
    SubjectPayload,
    changed_fields,
    validate,
)


class SemesterValidationTests(unittest.TestCase):
    def test_valid_semester_is_trimmed(self):
        payload = validate(SemesterPayload, {"name": "  Fall 2024 ", "year": 2024, "term": "fall"})
        self.assertEqual(payload.name, "Fall 2024")

    def test_rejects_year_out_of_range(self):
        with self.assertRaises(ValidationError) as ctx:
            validate(SemesterPayload, {"name": "Old", "year": 1999})
        self.assertIn("year", str(ctx.exception))

    def test_accepts_every_term(self):
        for term in TERMS:
            self.assertEqual(validate(SemesterPayload, {"name": "S1", "year": 2024, "term": term}).term, term)

    def test_rejects_unknown_term(self):
        with self.assertRaises(ValidationError):
            validate(SemesterPayload, {"name": "S1", "year": 2024, "term": "autumn"})

    def test_rejects_blank_name(self):
        with self.assertRaises(ValidationError):
            validate(SemesterPayload, {"name": "   ", "year": 2024})

    def test_changed_fields_keeps_explicit_nullable(self):
        payload = validate(SemesterUpdatePayload, {"term": None, "name": None})
        self.assertEqual(changed_fields(payload, nullable=("term",)), {"term": None})


class SubjectValidationTests(unittest.TestCase):
    def test_half_credit_steps(self):
        self.assertEqual(validate(SubjectPayload, {"name": "Lab", "grade": "A", "credits": 1.5}).credits, 1.5)
        with self.assertRaises(ValidationError):
            validate(SubjectPayload, {"name": "Lab", "grade": "A", "credits": 1.25})

    def test_every_credit_option_is_accepted(self):
        for credits in CREDIT_OPTIONS:
            payload = validate(SubjectPayload, {"name": "Lab", "grade": "A", "credits": credits})
            self.assertEqual(payload.credits, credits)

    def test_credit_bounds(self):
        for credits in (0, 0.25, 10.5):
            with self.assertRaises(ValidationError):
                validate(SubjectPayload, {"name": "Lab", "grade": "A", "credits": credits})

    def test_grade_required(self):
        with self.assertRaises(ValidationError):
            validate(SubjectPayload, {"name": "Lab", "grade": "", "credits": 3})


class GradeValidationTests(unittest.TestCase):
    def test_points_range(self):
        with self.assertRaises(ValidationError):
            validate(GradePayload, {"name": "S", "points": 10.5})
        with self.assertRaises(ValidationError):
            validate(GradePayload, {"name": "S", "points": -1})

    def test_name_length(self):
        with self.assertRaises(ValidationError):
            validate(GradePayload, {"name": "Outstanding!", "points": 10})

    def test_unknown_fields_rejected(self):
        with self.assertRaises(ValidationError):
            validate(GradePayload, {"name": "S", "points": 9, "colour": "gold"})


if __name__ == "__main__":
    unittest.main()
