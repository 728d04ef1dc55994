from fastapi import APIRouter

from backend.config import (
    ATTENDANCE_PAGE_SIZE_MAX,
    IMPORT_ALLOWED_EXTENSIONS,
    IMPORT_MAX_REPORTED_ERRORS,
    IMPORT_MAX_UPLOAD_MB,
)

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/import")
def import_config():
    return {
        "allowed_extensions": IMPORT_ALLOWED_EXTENSIONS,
        "max_upload_mb": IMPORT_MAX_UPLOAD_MB,
        "max_reported_errors": IMPORT_MAX_REPORTED_ERRORS,
        "attendance_page_size_max": ATTENDANCE_PAGE_SIZE_MAX,
    }
