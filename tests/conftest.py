import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("SQL_ECHO", "false")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("EMAIL_BACKEND", "console")
os.environ.setdefault("PUBLIC_BASE_URL", "https://lumeo.test")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")

import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import parse_qs, urlsplit

project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import lumeo.models  # noqa: F401
from lumeo.core.config import settings
from lumeo.core.rate_limit import limiter, signup_limiter
from lumeo.services.email_service import EmailService

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

limiter.enabled = False


@dataclass
class SentEmail:
    to_email: str
    subject: str
    text_body: str
    html_body: Optional[str]


class RecordingEmailService(EmailService):
    """Keeps every message instead of delivering it; set ``fail`` to simulate an outage"""

    def __init__(self):
        super().__init__(settings)
        self.sent: List[SentEmail] = []
        self.fail = False

    def send_email(self, *, to_email, subject, text_body, html_body=None) -> bool:
        self.sent.append(SentEmail(to_email, subject, text_body, html_body))
        return not self.fail

    def welcome_emails(self) -> List[SentEmail]:
        return [m for m in self.sent if "Confirm your email" in m.subject]

    def confirmation_emails(self) -> List[SentEmail]:
        return [m for m in self.sent if m.subject.startswith("You're in")]


def link_params(message: SentEmail) -> tuple[str, str]:
    """token and email from the confirmation link inside a welcome email"""
    match = re.search(r"https://lumeo\.test/confirm\?\S+", message.text_body)
    assert match, message.text_body
    query = parse_qs(urlsplit(match.group(0)).query)
    return query["token"][0], query["email"][0]


def get_signup(session: Session, email: str):
    from lumeo.models import EarlyAccessSignup

    session.expire_all()
    return session.exec(select(EarlyAccessSignup).where(EarlyAccessSignup.email == email)).first()


@pytest.fixture(autouse=True)
def _reset_signup_limiter():
    signup_limiter.reset()
    yield
    signup_limiter.reset()


@pytest.fixture()
def engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def db_session(engine):
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture()
def emails():
    return RecordingEmailService()


@pytest.fixture()
def client(engine, db_session, emails):
    from lumeo.main import app
    from lumeo.core.database import get_session
    from lumeo.services.email_service import get_email_service

    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_email_service] = lambda: emails
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
