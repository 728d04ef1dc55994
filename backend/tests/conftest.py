import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db
from backend.security import issue_session_token

EVENT_FIELDS = [
    {"name": "email", "label": "Email", "type": "email", "required": True},
    {"name": "nom", "label": "Nom", "type": "text", "required": True},
    {"name": "prenom", "label": "Prenom", "type": "text", "required": True},
    {"name": "organisation", "label": "Organisation", "type": "text", "required": False},
    {"name": "age", "label": "Age", "type": "number", "required": False},
]


@pytest.fixture()
def test_db(tmp_path, monkeypatch):
    test_db = tmp_path / "rollcall_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()
    return test_db


@pytest.fixture()
def client(test_db):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture()
def admin_headers():
    token, _ = issue_session_token("admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def staff_headers():
    def _headers(event_id: int, staff_member_id: int = 7) -> dict:
        token, _ = issue_session_token(str(staff_member_id), role="staff", event_id=event_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def event(test_db):
    """An event with a French-labelled profile schema, two courses and a hall."""
    event_id = db.create_event("Congrès 2026", EVENT_FIELDS)
    return {
        "id": event_id,
        "restricted_course": db.create_course(event_id, "Atelier A", requires_registration=True),
        "open_course": db.create_course(event_id, "Plénière", requires_registration=False),
        "hall": db.create_hall(event_id, {"name": "Salle 1"}),
    }


@pytest.fixture()
def make_participant(test_db):
    def _make(event_id: int, email: str | None, nom: str, prenom: str, *, badge: str | None = None) -> int:
        profile = {"nom": nom, "prenom": prenom}
        if email:
            profile["email"] = email
        return db.create_participant(
            event_id,
            profile,
            status="CONFIRMED",
            email_key=email.strip().lower() if email else None,
            name_key=f"{nom.lower()}_{prenom.lower()}",
            badge_code=badge,
        )

    return _make


@pytest.fixture()
def count_rows(test_db):
    """COUNT(*) over a table with equality filters; None matches NULL."""

    def _count(table: str, **where) -> int:
        clauses = []
        params = []
        for column, value in where.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(value)
        sql = f"SELECT COUNT(*) FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        conn = db.connect_db()
        cur = conn.cursor()
        cur.execute(sql, params)
        total = int(cur.fetchone()[0])
        conn.close()
        return total

    return _count
