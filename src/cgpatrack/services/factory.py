from cgpatrack.config.settings import settings
from cgpatrack.core.errors import StorageError
from cgpatrack.services.store import GradeStore


def build_store(backend: str = "") -> GradeStore:
    backend = (backend or settings.storage_backend).lower()
    if backend == "sqlite":
        from cgpatrack.services.sqlite_store import SqliteGradeStore

        return SqliteGradeStore(settings.sqlite_path)
    if backend == "appwrite":
        from cgpatrack.services.appwrite_service import AppwriteGradeStore

        return AppwriteGradeStore.from_settings()
    raise StorageError(f"Unsupported storage backend: {backend}. Use sqlite or appwrite.")
