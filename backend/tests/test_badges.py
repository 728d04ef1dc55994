import pytest

from backend.errors import BadgeAlreadyAssigned, BadgeCodeTaken, EventScopeViolation, ParticipantNotFound
from backend.services.attendance import scan
from backend.services.badges import assign_badge


def test_badge_is_assigned_once_and_scannable(event, make_participant):
    participant_id = make_participant(event["id"], "n@x.com", "No", "Badge")

    participant = assign_badge(participant_id, " NEW-1 ")
    assert participant["badge_code"] == "NEW-1"

    # Same code again is accepted, a different one is not.
    assert assign_badge(participant_id, "NEW-1")["badge_code"] == "NEW-1"
    with pytest.raises(BadgeAlreadyAssigned):
        assign_badge(participant_id, "NEW-2")

    assert scan("NEW-1", event["id"])["attendance"]["participant_id"] == participant_id


def test_badge_code_cannot_be_shared(event, make_participant):
    make_participant(event["id"], "a@x.com", "Alpha", "Ann", badge="B-7")
    other = make_participant(event["id"], "b@x.com", "Beta", "Bob")

    with pytest.raises(BadgeCodeTaken):
        assign_badge(other, "B-7")


def test_badge_assignment_checks_participant_and_scope(event, make_participant):
    participant_id = make_participant(event["id"], "s@x.com", "Scoped", "Staff")

    with pytest.raises(ParticipantNotFound):
        assign_badge(999, "X-1")
    with pytest.raises(EventScopeViolation):
        assign_badge(participant_id, "X-1", scope_event_id=event["id"] + 1)
