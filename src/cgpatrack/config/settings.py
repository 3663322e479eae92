from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    storage_backend: str = os.getenv("CGPATRACK_STORAGE", "sqlite").strip().lower()
    sqlite_path: str = os.getenv("CGPATRACK_SQLITE_PATH", "cgpatrack.db")

    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")

    appwrite_semesters_collection_id: str = os.getenv("APPWRITE_SEMESTERS_COLLECTION_ID", "semesters")
    appwrite_subjects_collection_id: str = os.getenv("APPWRITE_SUBJECTS_COLLECTION_ID", "subjects")
    appwrite_grades_collection_id: str = os.getenv("APPWRITE_GRADES_COLLECTION_ID", "grade_configs")

    default_grade_system: str = os.getenv("CGPATRACK_DEFAULT_GRADE_SYSTEM", "10-point")
    recalc_attempts: int = int(os.getenv("CGPATRACK_RECALC_ATTEMPTS", "3"))
    log_level: str = os.getenv("CGPATRACK_LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )


settings = Settings()
