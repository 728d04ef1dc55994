import logging
import sqlite3
from typing import TypedDict

from backend.errors import CourseNotFound, NotRegisteredForEvent, ParticipantNotFound, ensure_event_scope
from database.db import create_registration, get_course, get_participant, get_registration

logger = logging.getLogger(__name__)


class RegistrationResult(TypedDict):
    course_id: int
    participant_id: int
    registered: bool
    already_registered: bool
    status: str | None


def register_participant(
    course_id: int,
    participant_id: int,
    *,
    scope_event_id: int | None = None,
) -> RegistrationResult:
    """
    Register one participant to a course.

    Courses open to everyone need no registration and are left untouched.
    An existing registration is reported, not raised.
    """
    course = get_course(course_id)
    if not course:
        raise CourseNotFound()
    ensure_event_scope(course["event_id"], scope_event_id)

    participant = get_participant(participant_id)
    if not participant:
        raise ParticipantNotFound()
    if participant["event_id"] != course["event_id"]:
        raise NotRegisteredForEvent()

    if not course["requires_registration"]:
        return {
            "course_id": course_id,
            "participant_id": participant_id,
            "registered": False,
            "already_registered": False,
            "status": None,
        }

    existing = get_registration(participant_id, course_id)
    if existing is None:
        try:
            create_registration(participant_id, course_id, status="CONFIRMED")
            logger.info("Participant %s registered to course %s", participant_id, course_id)
            return {
                "course_id": course_id,
                "participant_id": participant_id,
                "registered": True,
                "already_registered": False,
                "status": "CONFIRMED",
            }
        except sqlite3.IntegrityError:
            existing = get_registration(participant_id, course_id)
            if existing is None:
                raise

    return {
        "course_id": course_id,
        "participant_id": participant_id,
        "registered": True,
        "already_registered": True,
        "status": existing["status"],
    }
