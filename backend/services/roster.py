"""
Roster reconciliation: register the people listed in an external spreadsheet
against a restricted course.

Each row is an independent unit of work. A row that cannot be resolved or
written is reported in the summary and the loop moves on; rows processed
before a failure (or before the caller gives up) stay committed. Two imports
of the same course must not run concurrently: the identity index is local to
one run and no cross-run lock is taken.
"""
import logging
import sqlite3
from typing import Any, Iterable, TypedDict

from backend import config
from backend.errors import CourseNotFound, EventNotFound, ensure_event_scope
from backend.schemas import FieldDefinition, parse_field_definitions
from backend.services.identity import IdentityIndex, IdentityKey, build_identity_key
from backend.services.rows import NormalizedRow, normalize_row
from database.db import (
    create_participant,
    create_registration,
    find_participant_by_email_key,
    get_course,
    get_event,
    get_event_participants,
    get_registration,
)

logger = logging.getLogger(__name__)

MISSING_IDENTITY_REASON = "Missing Email, Name (Nom/Prenom), or Full Name fields"

# The file's header occupies row 1.
FIRST_DATA_ROW = 2


class RowError(TypedDict):
    row: int
    identifier: str
    reason: str


class ReconcileResult(TypedDict):
    success: int
    failed: int
    errors: list[RowError]


class _Summary:
    def __init__(self, max_errors: int):
        self.success = 0
        self.failed = 0
        self.errors: list[RowError] = []
        self._max_errors = max_errors

    def ok(self) -> None:
        self.success += 1

    def fail(self, row_number: int, identifier: str, reason: str) -> None:
        self.failed += 1
        if len(self.errors) < self._max_errors:
            self.errors.append({"row": row_number, "identifier": identifier, "reason": reason})

    def result(self) -> ReconcileResult:
        return {"success": self.success, "failed": self.failed, "errors": self.errors}


def _create_participant_for_row(
    event_id: int,
    row: NormalizedRow,
    key: IdentityKey,
) -> int:
    """
    Create a PENDING participant for an unresolved row.

    When another writer already holds the email (the unique index fires), the
    existing participant is returned instead.
    """
    try:
        return create_participant(
            event_id,
            row.profile_fields,
            status="PENDING",
            email_key=key.email,
            name_key=key.name_key,
        )
    except sqlite3.IntegrityError:
        if key.email:
            existing = find_participant_by_email_key(event_id, key.email)
            if existing:
                return int(existing["id"])
        raise


def _register(participant_id: int, course_id: int) -> None:
    if get_registration(participant_id, course_id):
        return
    try:
        create_registration(participant_id, course_id, status="CONFIRMED")
    except sqlite3.IntegrityError:
        # Registered by a concurrent writer between the read and the insert.
        if not get_registration(participant_id, course_id):
            raise


def _resolve(index: IdentityIndex, row: NormalizedRow, key: IdentityKey) -> int | None:
    participant_id = index.resolve(key)
    # An unknown email still falls through to the full-name match.
    if participant_id is None and row.full_name:
        participant_id = index.resolve_full_name(row.full_name)
    return participant_id


def reconcile(
    course_id: int,
    raw_rows: Iterable[dict[Any, Any]],
    *,
    scope_event_id: int | None = None,
    max_errors: int | None = None,
) -> ReconcileResult:
    course = get_course(course_id)
    if not course:
        raise CourseNotFound()
    ensure_event_scope(course["event_id"], scope_event_id)

    summary = _Summary(config.IMPORT_MAX_REPORTED_ERRORS if max_errors is None else max_errors)
    if not course["requires_registration"]:
        logger.info("Course %s does not require registration; import skipped", course_id)
        return summary.result()

    event = get_event(course["event_id"])
    if not event:
        raise EventNotFound()
    event_id = int(event["id"])
    definitions: list[FieldDefinition] = parse_field_definitions(event["participant_fields"])

    index = IdentityIndex.from_participants(get_event_participants(event_id), definitions)
    created = 0

    for row_number, raw_row in enumerate(raw_rows, start=FIRST_DATA_ROW):
        row = normalize_row(raw_row, definitions)
        key = build_identity_key(row.profile_fields, definitions)
        participant_id = _resolve(index, row, key)

        if participant_id is None and (row.insufficient or key.is_empty):
            summary.fail(row_number, row.identifier, MISSING_IDENTITY_REASON)
            logger.warning("Row %s skipped: no usable identity fields", row_number)
            continue

        if participant_id is None:
            try:
                participant_id = _create_participant_for_row(event_id, row, key)
            except sqlite3.Error as exc:
                summary.fail(row_number, row.identifier, f"Failed to create new participant: {exc}")
                logger.warning("Row %s: participant creation failed: %s", row_number, exc)
                continue
            index.add(key, participant_id)
            created += 1

        try:
            _register(participant_id, course_id)
        except sqlite3.Error as exc:
            summary.fail(row_number, row.identifier, str(exc) or "Database error")
            logger.warning("Row %s: registration failed: %s", row_number, exc)
            continue
        summary.ok()

    result = summary.result()
    logger.info(
        "Roster import for course %s: %s succeeded, %s failed, %s participants created",
        course_id,
        result["success"],
        result["failed"],
        created,
    )
    return result
