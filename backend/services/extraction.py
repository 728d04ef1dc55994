"""
Turn an uploaded roster file into ordered row mappings (header -> cell value).

Only file formats are handled here; what the rows mean is decided by the
roster reconciler.
"""
from io import BytesIO, StringIO
from pathlib import PurePath
from typing import Any

import pandas as pd

from backend.config import IMPORT_ALLOWED_EXTENSIONS
from backend.errors import InvalidRosterFile

CSV_ENCODINGS = ("utf-8-sig", "latin-1")


def _decode(content: bytes) -> str:
    last_error: Exception | None = None
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError as exc:
            last_error = exc
    raise InvalidRosterFile(f"Cannot decode CSV file: {last_error}")


def _read_csv(content: bytes) -> pd.DataFrame:
    text = _decode(content)
    header = text.split("\n", 1)[0]
    # Spreadsheet exports in French locales separate with semicolons.
    sep = ";" if header.count(";") > header.count(",") else ","
    # Strings only: keeps leading zeros in phone numbers and badge codes.
    return pd.read_csv(StringIO(text), sep=sep, dtype=str, keep_default_na=False)


def _read_excel(content: bytes) -> pd.DataFrame:
    return pd.read_excel(BytesIO(content), sheet_name=0, dtype=object, engine="openpyxl")


def read_roster_rows(filename: str, content: bytes) -> list[dict[str, Any]]:
    extension = PurePath(filename or "").suffix.lower()
    if extension not in IMPORT_ALLOWED_EXTENSIONS:
        allowed = ", ".join(IMPORT_ALLOWED_EXTENSIONS)
        raise InvalidRosterFile(f"Unsupported file type '{extension or filename}'. Allowed: {allowed}")
    if not content:
        raise InvalidRosterFile("Uploaded file is empty.")

    try:
        df = _read_csv(content) if extension == ".csv" else _read_excel(content)
    except InvalidRosterFile:
        raise
    except Exception as exc:
        raise InvalidRosterFile(f"Failed to parse roster file: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")
