from dataclasses import asdict
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cgpatrack.config.log import configure_logging
from cgpatrack.config.settings import settings
from cgpatrack.core.errors import (
    CgpaTrackError,
    ConcurrencyConflict,
    Conflict,
    InvariantViolation,
    NotFound,
    StorageError,
    ValidationError,
)
from cgpatrack.services.analytics_service import AnalyticsService
from cgpatrack.services.factory import build_store
from cgpatrack.services.records_service import RecordsService

configure_logging(settings.log_level)

app = FastAPI(title="CGPA Tracker API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# most specific first
ERROR_STATUS = (
    (Conflict, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvariantViolation, status.HTTP_409_CONFLICT),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@app.exception_handler(CgpaTrackError)
async def handle_record_error(request: Request, exc: CgpaTrackError) -> JSONResponse:
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, error_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            code = error_code
            break
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})


@lru_cache(maxsize=1)
def get_records() -> RecordsService:
    return RecordsService.from_settings(build_store())


def get_analytics(records: RecordsService = Depends(get_records)) -> AnalyticsService:
    return AnalyticsService(records)


def _required_uid(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing x-user-id header")
    return x_user_id


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/semesters")
def list_semesters(
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> List[Dict]:
    return [asdict(semester) for semester in records.list_semesters(uid)]


@app.post("/semesters", status_code=status.HTTP_201_CREATED)
def create_semester(
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.create_semester(uid, payload))


@app.get("/semesters/{semester_id}")
def get_semester(
    semester_id: str,
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.get_semester(uid, semester_id))


@app.patch("/semesters/{semester_id}")
def update_semester(
    semester_id: str,
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.update_semester(uid, semester_id, payload))


@app.delete("/semesters/{semester_id}")
def delete_semester(
    semester_id: str,
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict[str, str]:
    records.delete_semester(uid, semester_id)
    return {"status": "deleted"}


@app.get("/semesters/{semester_id}/subjects")
def list_subjects(
    semester_id: str,
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> List[Dict]:
    return [asdict(subject) for subject in records.list_subjects(uid, semester_id)]


@app.post("/semesters/{semester_id}/subjects", status_code=status.HTTP_201_CREATED)
def create_subject(
    semester_id: str,
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.create_subject(uid, semester_id, payload))


@app.post("/semesters/{semester_id}/subjects/bulk", status_code=status.HTTP_201_CREATED)
def bulk_create_subjects(
    semester_id: str,
    payload: List[Dict[str, Any]] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> List[Dict]:
    return [asdict(subject) for subject in records.bulk_create_subjects(uid, semester_id, payload)]


@app.patch("/subjects/{subject_id}")
def update_subject(
    subject_id: str,
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.update_subject(uid, subject_id, payload))


@app.delete("/subjects/{subject_id}")
def delete_subject(
    subject_id: str,
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict[str, str]:
    records.delete_subject(uid, subject_id)
    return {"status": "deleted"}


@app.get("/grades")
def list_grades(
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> List[Dict]:
    return [asdict(grade) for grade in records.list_grades(uid)]


@app.post("/grades", status_code=status.HTTP_201_CREATED)
def create_grade(
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.create_grade(uid, payload))


@app.post("/grades/reset")
def reset_grades(
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> List[Dict]:
    return [asdict(grade) for grade in records.reset_to_default_grades(uid)]


@app.patch("/grades/{grade_id}")
def update_grade(
    grade_id: str,
    payload: Dict[str, Any] = Body(...),
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict:
    return asdict(records.update_grade(uid, grade_id, payload))


@app.delete("/grades/{grade_id}")
def delete_grade(
    grade_id: str,
    uid: str = Depends(_required_uid),
    records: RecordsService = Depends(get_records),
) -> Dict[str, Any]:
    replacement = records.delete_grade(uid, grade_id)
    return {
        "status": "deleted",
        "reassigned_to": asdict(replacement) if replacement else None,
    }


@app.get("/analytics")
def analytics(
    uid: str = Depends(_required_uid),
    service: AnalyticsService = Depends(get_analytics),
) -> Dict:
    return service.report(uid).to_dict()


@app.get("/dashboard")
def dashboard(
    uid: str = Depends(_required_uid),
    service: AnalyticsService = Depends(get_analytics),
) -> Dict:
    return service.overview(uid)
