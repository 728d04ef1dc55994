import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("ROLLCALL_DB_PATH", BASE_DIR / "database" / "rollcall.db"))
SIGNING_KEY = os.getenv("ROLLCALL_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("ROLLCALL_AUTH_TOKEN_TTL_SECONDS", "43200"))


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int = 0) -> int:
    if not value:
        return fallback
    try:
        return max(minimum, int(value))
    except ValueError:
        return fallback


def _parse_float(value: str | None, fallback: float) -> float:
    if not value:
        return fallback
    try:
        return max(0.0, float(value))
    except ValueError:
        return fallback


DB_TIMEOUT_SECONDS = _parse_float(os.getenv("ROLLCALL_DB_TIMEOUT_SECONDS"), 10.0)

CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("ROLLCALL_CORS_ALLOW_CREDENTIALS"), True)

LOG_LEVEL = (os.getenv("ROLLCALL_LOG_LEVEL") or "INFO").strip().upper()
LOG_FILE = (os.getenv("ROLLCALL_LOG_FILE") or "").strip() or None

# Roster import
IMPORT_MAX_REPORTED_ERRORS = _parse_int(os.getenv("ROLLCALL_IMPORT_MAX_REPORTED_ERRORS"), 200, minimum=1)
IMPORT_MAX_UPLOAD_MB = _parse_int(os.getenv("ROLLCALL_IMPORT_MAX_UPLOAD_MB"), 10, minimum=1)
IMPORT_ALLOWED_EXTENSIONS = _parse_csv(
    os.getenv("ROLLCALL_IMPORT_ALLOWED_EXTENSIONS"),
    [".csv", ".xlsx"],
)

ATTENDANCE_PAGE_SIZE_MAX = _parse_int(os.getenv("ROLLCALL_ATTENDANCE_PAGE_SIZE_MAX"), 100, minimum=1)
