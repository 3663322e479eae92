import unittest

from cgpatrack.core.analytics import (
    SemesterGpa,
    bottom_subjects,
    build_report,
    compute_best_worst_semester,
    compute_grade_distribution,
    compute_subjects_by_grade,
    compute_yearly_averages,
    top_subjects,
)


def subjects_with(*grades):
    return [{"name": f"Subject {index}", "grade": grade} for index, grade in enumerate(grades)]


class GradeDistributionTests(unittest.TestCase):
    def test_sorted_by_count_then_first_seen(self):
        shares = compute_grade_distribution(subjects_with("A", "B", "A", "O"))
        self.assertEqual([(s.grade, s.count, s.percentage) for s in shares], [
            ("A", 2, 50.0),
            ("B", 1, 25.0),
            ("O", 1, 25.0),
        ])

    def test_percentages_sum_to_hundred(self):
        shares = compute_grade_distribution(subjects_with("A", "B", "C", "A", "B", "C", "O"))
        self.assertAlmostEqual(sum(s.percentage for s in shares), 100.0, places=9)
        self.assertEqual([(s.grade, s.percentage) for s in shares], [
            ("A", 28.6),
            ("B", 28.6),
            ("C", 28.5),
            ("O", 14.3),
        ])

    def test_six_way_tie_still_totals_hundred(self):
        shares = compute_grade_distribution(subjects_with("O", "A+", "A", "B+", "B", "C"))
        self.assertEqual([s.grade for s in shares], ["O", "A+", "A", "B+", "B", "C"])
        self.assertEqual([s.percentage for s in shares], [16.7, 16.7, 16.7, 16.7, 16.6, 16.6])
        self.assertAlmostEqual(sum(s.percentage for s in shares), 100.0, places=9)

    def test_missing_grade_is_unknown(self):
        shares = compute_grade_distribution([{"name": "x"}, {"name": "y", "grade": ""}])
        self.assertEqual(shares[0].grade, "Unknown")
        self.assertEqual(shares[0].count, 2)

    def test_empty(self):
        self.assertEqual(compute_grade_distribution([]), [])

    def test_subjects_by_grade_deduplicates_names(self):
        grouped = compute_subjects_by_grade([
            {"name": "Maths", "grade": "A"},
            {"name": "Physics", "grade": "B"},
            {"name": "Maths", "grade": "A"},
        ])
        self.assertEqual(grouped, {"A": ["Maths"], "B": ["Physics"]})


class SemesterRollupTests(unittest.TestCase):
    def test_yearly_average_is_unweighted(self):
        gpas = [SemesterGpa("S1", 2023, 8.0), SemesterGpa("S2", 2023, 9.0), SemesterGpa("S3", 2024, 7.5)]
        averages = compute_yearly_averages(gpas)
        self.assertEqual([(a.year, a.value) for a in averages], [(2023, 8.5), (2024, 7.5)])

    def test_best_and_worst_skip_zero_and_keep_first_tie(self):
        gpas = [
            SemesterGpa("A", 2022, 8.0),
            SemesterGpa("B", 2022, 9.0),
            SemesterGpa("C", 2023, 0.0),
            SemesterGpa("D", 2023, 9.0),
            SemesterGpa("E", 2024, 7.0),
            SemesterGpa("F", 2024, 7.0),
        ]
        best, worst = compute_best_worst_semester(gpas)
        self.assertEqual(best.name, "B")
        self.assertEqual(worst.name, "E")

    def test_best_and_worst_none_without_graded_semesters(self):
        self.assertEqual(compute_best_worst_semester([SemesterGpa("A", 2022, 0.0)]), (None, None))
        self.assertEqual(compute_best_worst_semester([]), (None, None))

    def test_top_and_bottom_subjects(self):
        subjects = [
            {"name": "a", "grade_points": 7},
            {"name": "b", "grade_points": 10},
            {"name": "c", "grade_points": 5},
            {"name": "d", "grade_points": 10},
        ]
        self.assertEqual([s["name"] for s in top_subjects(subjects, 2)], ["b", "d"])
        self.assertEqual([s["name"] for s in bottom_subjects(subjects, 2)], ["c", "a"])


class ReportTests(unittest.TestCase):
    def test_empty_report(self):
        report = build_report([])
        self.assertEqual(report.gpa_by_semester, [])
        self.assertEqual(report.performance_metrics.cgpa, 0)
        self.assertIsNone(report.performance_metrics.best_semester)

    def test_full_report(self):
        semesters = [
            {
                "name": "Fall 2023",
                "year": 2023,
                "subjects": [
                    {"name": "Maths", "grade": "O", "grade_points": 10, "credits": 4},
                    {"name": "Physics", "grade": "A", "grade_points": 8, "credits": 3},
                    {"name": "Chemistry", "grade": "C+", "grade_points": 6, "credits": 3},
                ],
            },
            {
                "name": "Spring 2024",
                "year": 2024,
                "subjects": [{"name": "Biology", "grade": "A+", "grade_points": 9, "credits": 5}],
            },
            {"name": "Summer 2024", "year": 2024, "subjects": []},
        ]
        report = build_report(semesters)

        self.assertEqual([s.gpa for s in report.gpa_by_semester], [8.2, 9.0, 0.0])
        self.assertEqual([p["cgpa"] for p in report.cgpa_by_semester], [8.2, 8.47, 8.47])
        self.assertEqual([(y.year, y.value) for y in report.gpa_by_year], [(2023, 8.2), (2024, 4.5)])
        self.assertEqual([(y.year, y.value) for y in report.credits_by_year], [(2023, 10.0), (2024, 5.0)])

        metrics = report.performance_metrics
        self.assertEqual(metrics.cgpa, 8.47)
        self.assertEqual(metrics.total_credits, 15.0)
        self.assertEqual(metrics.total_subjects, 4)
        self.assertEqual(metrics.average_credits_per_semester, 5.0)
        self.assertEqual(metrics.best_semester.name, "Spring 2024")
        self.assertEqual(metrics.worst_semester.name, "Fall 2023")

        payload = report.to_dict()
        self.assertEqual(payload["grade_distribution"][0]["percentage"], 25.0)
        self.assertEqual(payload["subjects_by_grade"]["O"], ["Maths"])


if __name__ == "__main__":
    unittest.main()
