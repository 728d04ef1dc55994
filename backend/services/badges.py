import logging
import sqlite3

from backend.errors import BadgeAlreadyAssigned, BadgeCodeTaken, ParticipantNotFound, RollcallError, ensure_event_scope
from database.db import assign_badge_code, get_participant

logger = logging.getLogger(__name__)


def assign_badge(participant_id: int, badge_code: str, *, scope_event_id: int | None = None) -> dict:
    """
    Give a participant its badge code.

    A badge is assigned once. Re-sending the code already on the badge is a
    no-op; a different code is refused.
    """
    code = (badge_code or "").strip()
    if not code:
        raise RollcallError("Badge ID is required", code="badge_required")

    participant = get_participant(participant_id)
    if not participant:
        raise ParticipantNotFound()
    ensure_event_scope(participant["event_id"], scope_event_id)

    if participant["badge_code"] == code:
        return participant
    if participant["badge_code"]:
        raise BadgeAlreadyAssigned()

    try:
        assigned = assign_badge_code(participant_id, code)
    except sqlite3.IntegrityError:
        raise BadgeCodeTaken()

    participant = get_participant(participant_id)
    if not assigned and participant["badge_code"] != code:
        # Another writer assigned a different badge in between.
        raise BadgeAlreadyAssigned()

    logger.info("Badge %r assigned to participant %s", code, participant_id)
    return participant
