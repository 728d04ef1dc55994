"""
Attendance recorder: badge scans and explicit check-in/check-out.

Per (participant, course) the record moves NoRecord -> CheckedIn -> CheckedOut.
A course of None is the event-level record. The store keeps at most one row
per pair; a writer that loses the insert race gets the winner's row back.
"""
import logging
import math
import sqlite3
from datetime import datetime
from typing import TypedDict

from backend.config import ATTENDANCE_PAGE_SIZE_MAX
from backend.errors import (
    AlreadyCheckedIn,
    AlreadyCheckedOut,
    CourseNotFound,
    EventNotFound,
    HallNotFound,
    MustCheckInFirst,
    NotRegisteredForEvent,
    ParticipantNotFound,
    RestrictedCourseNotRegistered,
    RollcallError,
    ensure_event_scope,
)
from database.db import (
    find_participant_by_code,
    get_attendance,
    get_attendance_by_id,
    get_attendance_records,
    get_course,
    get_event,
    get_hall,
    get_participant,
    get_registration,
    insert_attendance,
    set_check_in_time,
    set_check_out_time,
)

logger = logging.getLogger(__name__)

SCAN_OK_MESSAGE = "Scan successful"


class ScanResult(TypedDict):
    attendance: dict
    message: str
    alreadyScanned: bool


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _already_scanned_message(course_id: int | None) -> str:
    if course_id is None:
        return "Already scanned for this event"
    return "Already scanned for this course"


def _load_context(
    event_id: int,
    course_id: int | None,
    hall_id: int | None,
    scope_event_id: int | None,
) -> dict | None:
    """Check scope and that the event, course and hall exist together; returns the course."""
    ensure_event_scope(event_id, scope_event_id)

    if not get_event(event_id):
        raise EventNotFound()

    course = None
    if course_id is not None:
        course = get_course(course_id)
        if not course or course["event_id"] != event_id:
            raise CourseNotFound()

    if hall_id is not None:
        hall = get_hall(hall_id)
        if not hall or hall["event_id"] != event_id:
            raise HallNotFound()

    return course


def _ensure_course_access(participant_id: int, course: dict | None) -> None:
    if not course or not course["requires_registration"]:
        return
    registration = get_registration(participant_id, course["id"])
    if not registration or registration["status"] != "CONFIRMED":
        raise RestrictedCourseNotRegistered()


def _participant_in_event(participant_id: int, event_id: int) -> dict:
    participant = get_participant(participant_id)
    if not participant:
        raise ParticipantNotFound()
    if participant["event_id"] != event_id:
        raise NotRegisteredForEvent()
    return participant


def scan(
    badge_or_id: str,
    event_id: int,
    course_id: int | None = None,
    hall_id: int | None = None,
    scanned_by_staff_id: int | None = None,
    *,
    scope_event_id: int | None = None,
) -> ScanResult:
    """
    Single-call check-in from a badge scan.

    Repeated scans for the same participant and course return the existing
    record with `alreadyScanned` set; they never create a second row.
    """
    code = str(badge_or_id or "").strip()
    if not code:
        raise RollcallError("Badge ID is required", code="badge_required")

    course = _load_context(event_id, course_id, hall_id, scope_event_id)

    participant = find_participant_by_code(code, event_id)
    if not participant:
        logger.warning("Scan rejected: unknown badge %r for event %s", code, event_id)
        raise ParticipantNotFound()
    if participant["event_id"] != event_id:
        logger.warning("Scan rejected: badge %r belongs to event %s, not %s", code, participant["event_id"], event_id)
        raise NotRegisteredForEvent()

    participant_id = int(participant["id"])
    try:
        _ensure_course_access(participant_id, course)
    except RestrictedCourseNotRegistered:
        logger.warning("Scan rejected: participant %s not registered for course %s", participant_id, course_id)
        raise

    existing = get_attendance(participant_id, course_id)
    if existing:
        return {
            "attendance": existing,
            "message": _already_scanned_message(course_id),
            "alreadyScanned": True,
        }

    try:
        attendance_id = insert_attendance(
            participant_id=participant_id,
            event_id=event_id,
            course_id=course_id,
            hall_id=hall_id,
            check_in_time=_now(),
            scanned_by_staff_id=scanned_by_staff_id,
        )
    except sqlite3.IntegrityError:
        existing = get_attendance(participant_id, course_id)
        if not existing:
            raise
        logger.info("Concurrent scan for participant %s course %s resolved to record %s",
                    participant_id, course_id, existing["id"])
        return {
            "attendance": existing,
            "message": _already_scanned_message(course_id),
            "alreadyScanned": True,
        }

    attendance = get_attendance_by_id(attendance_id)
    logger.info("Participant %s checked in (event %s, course %s)", participant_id, event_id, course_id)
    return {
        "attendance": attendance,
        "message": SCAN_OK_MESSAGE,
        "alreadyScanned": False,
    }


def check_in(
    participant_id: int,
    event_id: int,
    course_id: int | None = None,
    hall_id: int | None = None,
    scanned_by_staff_id: int | None = None,
    *,
    scope_event_id: int | None = None,
) -> dict:
    course = _load_context(event_id, course_id, hall_id, scope_event_id)
    _participant_in_event(participant_id, event_id)
    _ensure_course_access(participant_id, course)

    existing = get_attendance(participant_id, course_id)
    if existing and existing["check_in_time"]:
        raise AlreadyCheckedIn()

    if existing:
        if not set_check_in_time(existing["id"], _now(), hall_id=hall_id):
            raise AlreadyCheckedIn()
        attendance_id = existing["id"]
    else:
        try:
            attendance_id = insert_attendance(
                participant_id=participant_id,
                event_id=event_id,
                course_id=course_id,
                hall_id=hall_id,
                check_in_time=_now(),
                scanned_by_staff_id=scanned_by_staff_id,
            )
        except sqlite3.IntegrityError:
            if get_attendance(participant_id, course_id):
                raise AlreadyCheckedIn()
            raise

    logger.info("Participant %s checked in (event %s, course %s)", participant_id, event_id, course_id)
    return get_attendance_by_id(attendance_id)


def check_out(
    participant_id: int,
    event_id: int,
    course_id: int | None = None,
    *,
    scope_event_id: int | None = None,
) -> dict:
    _load_context(event_id, course_id, None, scope_event_id)
    _participant_in_event(participant_id, event_id)

    existing = get_attendance(participant_id, course_id)
    if not existing or not existing["check_in_time"]:
        raise MustCheckInFirst()
    if existing["check_out_time"]:
        raise AlreadyCheckedOut()

    if not set_check_out_time(existing["id"], _now()):
        current = get_attendance_by_id(existing["id"])
        if current and current["check_out_time"]:
            raise AlreadyCheckedOut()
        raise MustCheckInFirst()

    logger.info("Participant %s checked out (event %s, course %s)", participant_id, event_id, course_id)
    return get_attendance_by_id(existing["id"])


def list_attendance(
    event_id: int,
    *,
    course_id: int | None = None,
    participant_id: int | None = None,
    page: int = 1,
    limit: int = 10,
    scope_event_id: int | None = None,
) -> dict:
    ensure_event_scope(event_id, scope_event_id)
    page = max(1, int(page))
    limit = min(max(1, int(limit)), ATTENDANCE_PAGE_SIZE_MAX)
    rows, total = get_attendance_records(
        event_id,
        course_id=course_id,
        participant_id=participant_id,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return {
        "attendances": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
