import time
from datetime import datetime, timezone

import pytest
from sqlmodel import Session

from conftest import get_signup, link_params


def test_subscribe_creates_pending_signup_and_sends_link(client, db_session: Session, emails):
    res = client.post("/subscribe", json={"email": "alice@test.com"})
    assert res.status_code == 200
    data = res.json()
    assert data["success"] is True
    assert "check your email" in data["message"].lower()

    signup = get_signup(db_session, "alice@test.com")
    assert signup is not None
    assert signup.confirmed is False
    assert signup.confirmed_at is None
    assert signup.confirmation_token
    assert signup.source == "hero-form"
    assert signup.confirmation_sent_at is not None

    welcome = emails.welcome_emails()
    assert len(welcome) == 1
    assert welcome[0].to_email == "alice@test.com"
    token, email = link_params(welcome[0])
    assert token == signup.confirmation_token
    assert email == "alice@test.com"
    assert "alice%40test.com" in welcome[0].text_body


def test_subscribe_records_source_and_request_metadata(client, db_session: Session):
    res = client.post(
        "/subscribe",
        json={"email": "bob@test.com", "source": "footer-form"},
        headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert res.status_code == 200

    signup = get_signup(db_session, "bob@test.com")
    assert signup.source == "footer-form"
    assert signup.user_agent == "pytest-agent"
    assert signup.ip_address == "203.0.113.7"


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "not-an-email"},
        {"email": ""},
        {"email": None},
        {"email": 42},
        {"email": "missing@tld"},
        {"email": "two words@test.com"},
        {},
    ],
)
def test_subscribe_rejects_malformed_email(client, db_session: Session, emails, payload):
    res = client.post("/subscribe", json=payload)
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"]
    assert emails.sent == []

    from sqlmodel import select
    from lumeo.models import EarlyAccessSignup

    assert db_session.exec(select(EarlyAccessSignup)).all() == []


def test_resubmitting_pending_email_does_not_resend(client, db_session: Session, emails):
    first = client.post("/subscribe", json={"email": "carol@test.com"})
    token = get_signup(db_session, "carol@test.com").confirmation_token

    second = client.post("/subscribe", json={"email": "carol@test.com"})
    assert first.status_code == second.status_code == 200
    assert "already on the list" in second.json()["message"]

    assert len(emails.welcome_emails()) == 1
    assert get_signup(db_session, "carol@test.com").confirmation_token == token


def test_resubmitting_confirmed_email_reports_already_confirmed(client, db_session: Session, emails):
    client.post("/subscribe", json={"email": "dave@test.com"})
    token, email = link_params(emails.welcome_emails()[0])
    assert client.post("/confirm", json={"token": token, "email": email}).status_code == 200

    again = client.post("/subscribe", json={"email": "dave@test.com"})
    assert again.status_code == 200
    assert again.json()["success"] is True
    assert "already confirmed" in again.json()["message"]
    assert len(emails.welcome_emails()) == 1


def test_email_case_is_normalized(client, db_session: Session, emails):
    client.post("/subscribe", json={"email": "User@Example.com"})
    res = client.post("/subscribe", json={"email": "  user@example.COM "})
    assert res.status_code == 200
    assert "already on the list" in res.json()["message"]

    signup = get_signup(db_session, "user@example.com")
    assert signup is not None
    assert len(emails.welcome_emails()) == 1
    assert emails.welcome_emails()[0].to_email == "user@example.com"


def test_delivery_failure_keeps_signup(client, db_session: Session, emails):
    emails.fail = True
    res = client.post("/subscribe", json={"email": "erin@test.com"})
    assert res.status_code == 200
    assert res.json()["success"] is True

    signup = get_signup(db_session, "erin@test.com")
    assert signup is not None
    assert signup.confirmed is False
    assert signup.confirmation_sent_at is None


def test_store_outage_returns_generic_error(client, db_session: Session, emails, monkeypatch):
    from lumeo.core.errors import StoreUnavailableError
    from lumeo.services.signup_store import SignupStore

    def broken(*args, **kwargs):
        raise StoreUnavailableError()

    monkeypatch.setattr(SignupStore, "find_by_email", broken)
    res = client.post("/subscribe", json={"email": "frank@test.com"})
    assert res.status_code == 500
    body = res.json()
    assert body == {"error": "Internal server error", "code": "STORE_UNAVAILABLE", "request_id": body["request_id"]}
    assert body["request_id"]
    assert emails.sent == []


def test_concurrent_insert_is_answered_like_existing_signup(db_session: Session, emails, monkeypatch):
    from lumeo.services.signup_store import SignupStore
    from lumeo.services.signups import SignupService, SignupStatus

    SignupStore.create(db_session, email="grace@test.com", token="existing-token")

    real_find = SignupStore.find_by_email
    calls = {"n": 0}

    def find_misses_once(session, email):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(session, email)

    monkeypatch.setattr(SignupStore, "find_by_email", staticmethod(find_misses_once))

    result = SignupService.subscribe(db_session, emails, email="grace@test.com")
    assert result.status == SignupStatus.PENDING
    assert result.signup.confirmation_token == "existing-token"
    assert emails.sent == []


def test_overlong_source_is_reported_as_source_error(client, db_session: Session, emails):
    res = client.post("/subscribe", json={"email": "heidi@test.com", "source": "x" * 65})
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"] == "Source must be a string of at most 64 characters"
    assert get_signup(db_session, "heidi@test.com") is None
    assert emails.sent == []


def test_failed_delivery_marker_does_not_fail_signup(client, db_session: Session, emails, monkeypatch):
    from lumeo.core.errors import StoreUnavailableError
    from lumeo.services.signup_store import SignupStore

    def broken(*args, **kwargs):
        raise StoreUnavailableError()

    monkeypatch.setattr(SignupStore, "mark_confirmation_sent", broken)
    res = client.post("/subscribe", json={"email": "ivan@test.com"})
    assert res.status_code == 200
    assert res.json()["success"] is True

    signup = get_signup(db_session, "ivan@test.com")
    assert signup is not None
    assert signup.confirmation_sent_at is None
    assert len(emails.welcome_emails()) == 1


@pytest.fixture()
def new_york_clock(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_node_id_ignores_server_timezone(new_york_clock):
    from lumeo.models import EarlyAccessSignup
    from lumeo.services.signups import _base36, node_id_for

    millis = 1704067200000  # 2024-01-01T00:00:00Z
    aware = EarlyAccessSignup(email="alice@test.com", confirmation_token="t", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    naive = EarlyAccessSignup(email="alice@test.com", confirmation_token="t", created_at=datetime(2024, 1, 1))

    assert node_id_for(aware) == f"ALICE_{_base36(millis)}"
    assert node_id_for(naive) == node_id_for(aware)
    assert _base36(0) == "0"
    assert _base36(35) == "Z"
    assert _base36(36 * 36 + 1) == "101"
