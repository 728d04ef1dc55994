import pytest

import backend.security as security
from backend.security import decode_session_token, event_scope, issue_session_token, staff_id


def test_staff_token_carries_event_scope():
    token, payload = issue_session_token("12", role="staff", event_id=3)
    session = decode_session_token(token)

    assert session == payload
    assert event_scope(session) == 3
    assert staff_id(session) == 12


def test_admin_token_is_unscoped():
    token, _ = issue_session_token("admin")
    session = decode_session_token(token)
    assert event_scope(session) is None
    assert staff_id(session) is None


def test_staff_token_requires_event():
    with pytest.raises(ValueError):
        issue_session_token("12", role="staff")
    with pytest.raises(ValueError):
        issue_session_token("12", role="owner")


def test_tampered_or_expired_tokens_are_rejected(monkeypatch):
    token, _ = issue_session_token("admin")
    payload_b64, signature = token.split(".", 1)
    assert decode_session_token(f"{payload_b64}x.{signature}") is None

    monkeypatch.setattr(security, "AUTH_TOKEN_TTL_SECONDS", -10)
    expired, _ = issue_session_token("admin")
    assert decode_session_token(expired) is None
