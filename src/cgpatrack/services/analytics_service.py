from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from cgpatrack.core.analytics import AnalyticsReport, bottom_subjects, build_report, top_subjects
from cgpatrack.core.gpa import compute_cgpa, compute_total_credits
from cgpatrack.core.grades import performance_level
from cgpatrack.services.records_service import RecordsService


class AnalyticsService:
    def __init__(self, records: RecordsService) -> None:
        self.records = records

    def report(self, uid: str) -> AnalyticsReport:
        return build_report(self.records.list_semesters(uid, chronological=True))

    def overview(self, uid: str, limit: int = 5) -> Dict[str, Any]:
        """Dashboard summary: CGPA with its performance band and the strongest/weakest subjects."""
        semesters = self.records.list_semesters(uid, chronological=True)
        subjects = [subject for semester in semesters for subject in semester.subjects]
        cgpa = compute_cgpa(semesters)
        return {
            "cgpa": cgpa,
            "performance": asdict(performance_level(cgpa)),
            "semester_count": len(semesters),
            "subject_count": len(subjects),
            "total_credits": compute_total_credits(subjects),
            "top_subjects": [asdict(subject) for subject in top_subjects(subjects, limit)],
            "bottom_subjects": [asdict(subject) for subject in bottom_subjects(subjects, limit)],
        }
