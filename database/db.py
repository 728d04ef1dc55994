import json
import sqlite3
from typing import Any

from backend.config import DB_PATH, DB_TIMEOUT_SECONDS

REGISTRATION_STATUSES = ("PENDING", "CONFIRMED", "CANCELLED")

PARTICIPANT_COLUMNS = "id, event_id, profile_fields, status, badge_code, email_key, name_key, created_at"
ATTENDANCE_COLUMNS = (
    "id, participant_id, event_id, course_id, hall_id, "
    "check_in_time, check_out_time, scanned_by_staff_id, created_at, updated_at"
)


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), timeout=DB_TIMEOUT_SECONDS, check_same_thread=False)
    # recommended with FK tables
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables():
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        participant_fields TEXT NOT NULL DEFAULT '[]',   -- JSON field definitions
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS halls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER NOT NULL,
        hall_fields TEXT NOT NULL DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS courses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        start_time TEXT,
        end_time TEXT,
        requires_registration INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS participants (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id INTEGER NOT NULL,
        profile_fields TEXT NOT NULL DEFAULT '{}',       -- JSON map keyed by field name
        status TEXT NOT NULL DEFAULT 'PENDING',
        badge_code TEXT UNIQUE,
        email_key TEXT,                                  -- lower-cased, trimmed
        name_key TEXT,                                   -- lastname_firstname
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    )
    """)
    cursor.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS ux_participants_event_email
    ON participants(event_id, email_key)
    WHERE email_key IS NOT NULL
    """)
    cursor.execute("""
    CREATE INDEX IF NOT EXISTS ix_participants_event_name
    ON participants(event_id, name_key)
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS course_registrations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        participant_id INTEGER NOT NULL,
        course_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'CONFIRMED',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (participant_id) REFERENCES participants(id) ON DELETE CASCADE,
        FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE,
        UNIQUE(participant_id, course_id)
    )
    """)

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS attendance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        participant_id INTEGER NOT NULL,
        event_id INTEGER NOT NULL,
        course_id INTEGER,                               -- NULL = event-level check-in
        hall_id INTEGER,
        check_in_time TEXT,
        check_out_time TEXT,
        scanned_by_staff_id INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (participant_id) REFERENCES participants(id) ON DELETE CASCADE,
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE,
        FOREIGN KEY (course_id) REFERENCES courses(id) ON DELETE CASCADE,
        FOREIGN KEY (hall_id) REFERENCES halls(id) ON DELETE SET NULL
    )
    """)
    # Autoincrement ids start at 1, so 0 stands in for the event-level row.
    cursor.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS ux_attendance_participant_course
    ON attendance(participant_id, IFNULL(course_id, 0))
    """)
    cursor.execute("""
    CREATE INDEX IF NOT EXISTS ix_attendance_event
    ON attendance(event_id, course_id)
    """)

    conn.commit()
    conn.close()


def _load_json(value: str | None, fallback: Any) -> Any:
    if not value:
        return fallback
    try:
        return json.loads(value)
    except ValueError:
        return fallback


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


# -----------------------------
# Events, halls, courses
# -----------------------------
def create_event(name: str, participant_fields: list[dict] | None = None) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO events (name, participant_fields)
        VALUES (?, ?)
        """,
        (name, _dump_json(participant_fields or [])),
    )
    event_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return event_id


def get_event(event_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, name, participant_fields
        FROM events
        WHERE id = ?
        """,
        (event_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {
        "id": row[0],
        "name": row[1],
        "participant_fields": _load_json(row[2], []),
    }


def create_hall(event_id: int, hall_fields: dict | None = None) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO halls (event_id, hall_fields)
        VALUES (?, ?)
        """,
        (event_id, _dump_json(hall_fields or {})),
    )
    hall_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return hall_id


def get_hall(hall_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, event_id, hall_fields
        FROM halls
        WHERE id = ?
        """,
        (hall_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {"id": row[0], "event_id": row[1], "fields": _load_json(row[2], {})}


def create_course(
    event_id: int,
    title: str,
    *,
    requires_registration: bool = False,
    start_time: str | None = None,
    end_time: str | None = None,
) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO courses (event_id, title, start_time, end_time, requires_registration)
        VALUES (?, ?, ?, ?, ?)
        """,
        (event_id, title, start_time, end_time, 1 if requires_registration else 0),
    )
    course_id = int(cur.lastrowid)
    conn.commit()
    conn.close()
    return course_id


def get_course(course_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, event_id, title, start_time, end_time, requires_registration
        FROM courses
        WHERE id = ?
        """,
        (course_id,),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {
        "id": row[0],
        "event_id": row[1],
        "title": row[2],
        "start_time": row[3],
        "end_time": row[4],
        "requires_registration": bool(row[5]),
    }


# -----------------------------
# Participants
# -----------------------------
def _participant_from_row(row) -> dict:
    return {
        "id": row[0],
        "event_id": row[1],
        "profile_fields": _load_json(row[2], {}),
        "status": row[3],
        "badge_code": row[4],
        "email_key": row[5],
        "name_key": row[6],
        "created_at": row[7],
    }


def create_participant(
    event_id: int,
    profile_fields: dict[str, Any],
    *,
    status: str = "PENDING",
    email_key: str | None = None,
    name_key: str | None = None,
    badge_code: str | None = None,
) -> int:
    """
    Insert a participant. Raises sqlite3.IntegrityError when the event already
    holds a participant with the same email key or the badge code is taken.
    """
    if status not in REGISTRATION_STATUSES:
        raise ValueError(f"Unexpected participant status: {status}")

    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO participants (event_id, profile_fields, status, badge_code, email_key, name_key)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (event_id, _dump_json(profile_fields), status, badge_code, email_key, name_key),
        )
        participant_id = int(cur.lastrowid)
        conn.commit()
        return participant_id
    finally:
        conn.close()


def get_participant(participant_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {PARTICIPANT_COLUMNS}
        FROM participants
        WHERE id = ?
        """,
        (participant_id,),
    )
    row = cur.fetchone()
    conn.close()
    return _participant_from_row(row) if row else None


def find_participant_by_email_key(event_id: int, email_key: str) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {PARTICIPANT_COLUMNS}
        FROM participants
        WHERE event_id = ? AND email_key = ?
        """,
        (event_id, email_key),
    )
    row = cur.fetchone()
    conn.close()
    return _participant_from_row(row) if row else None


def find_participant_by_code(code: str, event_id: int) -> dict | None:
    """
    Look a participant up by badge code, falling back to the participant id.

    A badge match always wins over an id match. Among id matches one inside
    `event_id` wins; otherwise a participant from another event is returned so
    the caller can tell "wrong event" from "unknown".
    """
    clean_code = (code or "").strip()
    if not clean_code:
        return None

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {PARTICIPANT_COLUMNS}
        FROM participants
        WHERE badge_code = ? OR CAST(id AS TEXT) = ?
        ORDER BY CASE WHEN badge_code = ? THEN 0 ELSE 1 END,
                 CASE WHEN event_id = ? THEN 0 ELSE 1 END,
                 id
        LIMIT 1
        """,
        (clean_code, clean_code, clean_code, event_id),
    )
    row = cur.fetchone()
    conn.close()
    return _participant_from_row(row) if row else None


def get_event_participants(event_id: int) -> list[dict]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {PARTICIPANT_COLUMNS}
        FROM participants
        WHERE event_id = ?
        ORDER BY id
        """,
        (event_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [_participant_from_row(r) for r in rows]


def assign_badge_code(participant_id: int, badge_code: str) -> bool:
    """Set the badge code once; returns False when one is already assigned."""
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE participants
            SET badge_code = ?
            WHERE id = ? AND badge_code IS NULL
            """,
            (badge_code.strip(), participant_id),
        )
        conn.commit()
        return cur.rowcount == 1
    finally:
        conn.close()


# -----------------------------
# Course registrations
# -----------------------------
def get_registration(participant_id: int, course_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, participant_id, course_id, status, created_at
        FROM course_registrations
        WHERE participant_id = ? AND course_id = ?
        """,
        (participant_id, course_id),
    )
    row = cur.fetchone()
    conn.close()
    if not row:
        return None
    return {
        "id": row[0],
        "participant_id": row[1],
        "course_id": row[2],
        "status": row[3],
        "created_at": row[4],
    }


def create_registration(participant_id: int, course_id: int, status: str = "CONFIRMED") -> int:
    """Raises sqlite3.IntegrityError when the pair is already registered."""
    if status not in REGISTRATION_STATUSES:
        raise ValueError(f"Unexpected registration status: {status}")

    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO course_registrations (participant_id, course_id, status)
            VALUES (?, ?, ?)
            """,
            (participant_id, course_id, status),
        )
        registration_id = int(cur.lastrowid)
        conn.commit()
        return registration_id
    finally:
        conn.close()


# -----------------------------
# Attendance
# -----------------------------
def _attendance_from_row(row) -> dict:
    return {
        "id": row[0],
        "participant_id": row[1],
        "event_id": row[2],
        "course_id": row[3],
        "hall_id": row[4],
        "check_in_time": row[5],
        "check_out_time": row[6],
        "scanned_by_staff_id": row[7],
        "created_at": row[8],
        "updated_at": row[9],
    }


def get_attendance(participant_id: int, course_id: int | None) -> dict | None:
    """The single attendance row for (participant, course); course None is event-level."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {ATTENDANCE_COLUMNS}
        FROM attendance
        WHERE participant_id = ? AND IFNULL(course_id, 0) = IFNULL(?, 0)
        """,
        (participant_id, course_id),
    )
    row = cur.fetchone()
    conn.close()
    return _attendance_from_row(row) if row else None


def get_attendance_by_id(attendance_id: int) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {ATTENDANCE_COLUMNS}
        FROM attendance
        WHERE id = ?
        """,
        (attendance_id,),
    )
    row = cur.fetchone()
    conn.close()
    return _attendance_from_row(row) if row else None


def insert_attendance(
    *,
    participant_id: int,
    event_id: int,
    course_id: int | None,
    hall_id: int | None,
    check_in_time: str | None,
    scanned_by_staff_id: int | None = None,
) -> int:
    """
    Insert the attendance row for (participant, course).

    Raises sqlite3.IntegrityError when a concurrent writer inserted the row first.
    """
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO attendance (
                participant_id,
                event_id,
                course_id,
                hall_id,
                check_in_time,
                scanned_by_staff_id
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (participant_id, event_id, course_id, hall_id, check_in_time, scanned_by_staff_id),
        )
        attendance_id = int(cur.lastrowid)
        conn.commit()
        return attendance_id
    finally:
        conn.close()


def set_check_in_time(attendance_id: int, check_in_time: str, *, hall_id: int | None = None) -> bool:
    """Compare-and-set: only writes when the row has no check-in yet."""
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE attendance
            SET check_in_time = ?,
                hall_id = COALESCE(?, hall_id),
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND check_in_time IS NULL
            """,
            (check_in_time, hall_id, attendance_id),
        )
        conn.commit()
        return cur.rowcount == 1
    finally:
        conn.close()


def set_check_out_time(attendance_id: int, check_out_time: str) -> bool:
    """Compare-and-set: only writes on a checked-in row that is not checked out."""
    conn = connect_db()
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE attendance
            SET check_out_time = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
              AND check_in_time IS NOT NULL
              AND check_out_time IS NULL
            """,
            (check_out_time, attendance_id),
        )
        conn.commit()
        return cur.rowcount == 1
    finally:
        conn.close()


def get_attendance_records(
    event_id: int,
    *,
    course_id: int | None = None,
    participant_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Page of attendance rows for an event, newest check-in first, plus the total."""
    clauses = ["event_id = ?"]
    params: list[Any] = [event_id]
    if course_id is not None:
        clauses.append("course_id = ?")
        params.append(course_id)
    if participant_id is not None:
        clauses.append("participant_id = ?")
        params.append(participant_id)
    where = " AND ".join(clauses)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM attendance WHERE {where}", params)
    total = int(cur.fetchone()[0])
    cur.execute(
        f"""
        SELECT {ATTENDANCE_COLUMNS}
        FROM attendance
        WHERE {where}
        ORDER BY check_in_time DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (*params, limit, offset),
    )
    rows = cur.fetchall()
    conn.close()
    return [_attendance_from_row(r) for r in rows], total
