from datetime import timedelta

from sqlmodel import Session

from conftest import link_params


def _seed(client, emails):
    for email in ("a@test.com", "b@test.com", "c@test.com"):
        client.post("/subscribe", json={"email": email})
    token, email = link_params(emails.welcome_emails()[0])
    client.post("/confirm", json={"token": token, "email": email})


def test_stats_require_admin_key(client):
    assert client.get("/admin/stats").status_code == 401
    res = client.get("/admin/stats", headers={"X-Admin-Key": "wrong"})
    assert res.status_code == 401
    assert res.json()["error"] == "Invalid admin key"


def test_stats_unavailable_without_configured_key(client, monkeypatch):
    from lumeo.core.config import settings

    monkeypatch.setattr(settings, "admin_api_key", None)
    res = client.get("/admin/stats", headers={"X-Admin-Key": "test-admin-key"})
    assert res.status_code == 503


def test_stats_counts_total_confirmed_and_recent(client, db_session: Session, emails):
    from lumeo.models import utc_now
    from lumeo.services.signup_store import SignupStore

    _seed(client, emails)
    old = SignupStore.create(db_session, email="old@test.com", token="old-token")
    old.created_at = utc_now() - timedelta(days=3)
    db_session.add(old)
    db_session.commit()

    res = client.get("/admin/stats", headers={"X-Admin-Key": "test-admin-key"})
    assert res.status_code == 200
    assert res.json() == {"total": 4, "confirmed": 1, "recent": 3}
