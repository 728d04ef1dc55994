import sqlite3

import pytest

import backend.services.roster as roster
import database.db as db
from backend.errors import CourseNotFound, EventScopeViolation
from backend.services.roster import MISSING_IDENTITY_REASON, reconcile


def _registrations(course_id: int) -> list[tuple[int, str]]:
    conn = db.connect_db()
    cur = conn.cursor()
    cur.execute(
        "SELECT participant_id, status FROM course_registrations WHERE course_id = ? ORDER BY participant_id",
        (course_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return rows


def test_unknown_course_fails_the_whole_import(test_db):
    with pytest.raises(CourseNotFound):
        reconcile(999, [{"Email": "a@x.com"}])


def test_open_course_import_is_a_noop(event, count_rows):
    result = reconcile(event["open_course"], [{"Email": "a@x.com", "Nom": "A", "Prenom": "B"}])
    assert result == {"success": 0, "failed": 0, "errors": []}
    assert count_rows("participants", event_id=event["id"]) == 0


def test_staff_bound_to_another_event_is_rejected(event):
    with pytest.raises(EventScopeViolation):
        reconcile(event["restricted_course"], [], scope_event_id=event["id"] + 1)


def test_existing_participant_matched_by_email_is_registered(event, make_participant, count_rows):
    existing = make_participant(event["id"], "jane@x.com", "Doe", "Jane")
    rows = [{"Email": "JANE@x.com ", "Nom": "Other", "Prenom": "Name"}]

    result = reconcile(event["restricted_course"], rows)

    assert result == {"success": 1, "failed": 0, "errors": []}
    assert count_rows("participants", event_id=event["id"]) == 1
    assert _registrations(event["restricted_course"]) == [(existing, "CONFIRMED")]


def test_existing_participant_matched_by_name_pair(event, make_participant):
    existing = make_participant(event["id"], None, "Durand", "Jean")
    result = reconcile(event["restricted_course"], [{"nom": " durand", "PRENOM": "JEAN "}])

    assert result["success"] == 1
    assert _registrations(event["restricted_course"]) == [(existing, "CONFIRMED")]


def test_full_name_column_matches_existing_participant(event, make_participant, count_rows):
    existing = make_participant(event["id"], None, "Dupont", "Marie Claire")
    result = reconcile(event["restricted_course"], [{"Full Name": "Marie Claire Dupont"}])

    assert result["success"] == 1
    assert count_rows("participants", event_id=event["id"]) == 1
    assert _registrations(event["restricted_course"]) == [(existing, "CONFIRMED")]


def test_duplicate_email_in_one_file_creates_one_participant(event):
    rows = [
        {"Email": "a@x.com", "Nom": "Alpha", "Prenom": "Ann"},
        {"Email": "A@X.com", "Nom": "Alpha", "Prenom": "Ann"},
    ]

    result = reconcile(event["restricted_course"], rows)

    assert result == {"success": 2, "failed": 0, "errors": []}
    participants = db.get_event_participants(event["id"])
    assert len(participants) == 1
    assert participants[0]["status"] == "PENDING"
    assert participants[0]["email_key"] == "a@x.com"
    assert participants[0]["profile_fields"]["nom"] == "Alpha"
    assert len(_registrations(event["restricted_course"])) == 1


def test_duplicate_name_without_email_resolves_to_row_created_earlier(event, count_rows):
    rows = [
        {"Nom complet": "Paul Martin"},
        {"Nom": "Martin", "Prenom": "Paul"},
    ]

    result = reconcile(event["restricted_course"], rows)

    assert result["success"] == 2
    assert count_rows("participants", event_id=event["id"]) == 1


def test_rows_without_identity_are_reported_not_dropped(event):
    rows = [
        {"Email": "ok@x.com"},
        {"Organisation": "ACME"},
        {"Nom": "Solo"},
        {"Full Name": "Cher"},
    ]

    result = reconcile(event["restricted_course"], rows)

    assert result["success"] == 1
    assert result["failed"] == 3
    assert result["errors"] == [
        {"row": 3, "identifier": "N/A", "reason": MISSING_IDENTITY_REASON},
        {"row": 4, "identifier": "N/A", "reason": MISSING_IDENTITY_REASON},
        {"row": 5, "identifier": "Cher", "reason": MISSING_IDENTITY_REASON},
    ]


def test_reimporting_the_same_file_is_idempotent(event, make_participant, count_rows):
    make_participant(event["id"], "known@x.com", "Known", "Person")
    rows = [
        {"Email": "known@x.com"},
        {"Email": "new@x.com", "Nom": "New", "Prenom": "Comer"},
        {"Nom": "Sans", "Prenom": "Mail"},
    ]

    first = reconcile(event["restricted_course"], rows)
    participants_after_first = count_rows("participants", event_id=event["id"])
    second = reconcile(event["restricted_course"], rows)

    assert first == {"success": 3, "failed": 0, "errors": []}
    assert second == {"success": 3, "failed": 0, "errors": []}
    assert participants_after_first == 3
    assert count_rows("participants", event_id=event["id"]) == 3
    assert count_rows("course_registrations", course_id=event["restricted_course"]) == 3


def test_registration_failure_is_recorded_per_row_and_loop_continues(event, monkeypatch, count_rows):
    real_create = db.create_registration
    calls = {"n": 0}

    def flaky_create(participant_id, course_id, status="CONFIRMED"):
        calls["n"] += 1
        if calls["n"] == 1:
            raise sqlite3.OperationalError("database is locked")
        return real_create(participant_id, course_id, status)

    monkeypatch.setattr(roster, "create_registration", flaky_create)
    rows = [
        {"Email": "first@x.com"},
        {"Email": "second@x.com"},
    ]

    result = reconcile(event["restricted_course"], rows)

    assert result["success"] == 1
    assert result["failed"] == 1
    assert result["errors"] == [{"row": 2, "identifier": "first@x.com", "reason": "database is locked"}]
    # The participant created for the failed row stays committed.
    assert count_rows("participants", event_id=event["id"]) == 2


def test_participant_creation_failure_is_recorded(event, monkeypatch):
    def broken_create(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(roster, "create_participant", broken_create)
    result = reconcile(event["restricted_course"], [{"Email": "a@x.com"}])

    assert result["failed"] == 1
    assert result["errors"][0]["reason"] == "Failed to create new participant: disk I/O error"


def test_email_taken_by_concurrent_writer_reuses_that_participant(event, monkeypatch, make_participant, count_rows):
    # The pre-run index is empty, then another import inserts the same email.
    monkeypatch.setattr(roster, "get_event_participants", lambda event_id: [])
    winner = make_participant(event["id"], "race@x.com", "Race", "Winner")

    result = reconcile(event["restricted_course"], [{"Email": "race@x.com"}])

    assert result == {"success": 1, "failed": 0, "errors": []}
    assert count_rows("participants", event_id=event["id"]) == 1
    assert _registrations(event["restricted_course"]) == [(winner, "CONFIRMED")]


def test_error_list_is_bounded_but_failed_counts_every_row(event):
    rows = [{"Organisation": f"Org {i}"} for i in range(5)]
    result = reconcile(event["restricted_course"], rows, max_errors=2)

    assert result["failed"] == 5
    assert [e["row"] for e in result["errors"]] == [2, 3]


def test_unknown_email_still_matches_by_full_name(event, make_participant, count_rows):
    existing = make_participant(event["id"], None, "Dupont", "Marie")

    result = reconcile(event["restricted_course"], [{"Email": "m@x.com", "Full Name": "Dupont Marie"}])

    assert result == {"success": 1, "failed": 0, "errors": []}
    assert count_rows("participants", event_id=event["id"]) == 1
    assert _registrations(event["restricted_course"]) == [(existing, "CONFIRMED")]


def test_schemaless_event_stores_headers_once_and_reimports_cleanly(test_db, count_rows):
    event_id = db.create_event("Sans schéma")
    course_id = db.create_course(event_id, "Atelier", requires_registration=True)
    rows = [{"Email": "Z@x.com", "Nom": "Zola", "Prenom": "Emile"}]

    assert reconcile(course_id, rows)["success"] == 1
    assert reconcile(course_id, rows)["success"] == 1

    participants = db.get_event_participants(event_id)
    assert len(participants) == 1
    assert participants[0]["profile_fields"] == {"Email": "Z@x.com", "Nom": "Zola", "Prenom": "Emile"}
    assert participants[0]["email_key"] == "z@x.com"
    assert count_rows("course_registrations", course_id=course_id) == 1
