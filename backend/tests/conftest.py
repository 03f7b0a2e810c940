from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from examhub import services
from examhub.config import Settings
from examhub.database import build_engine, create_db_and_tables
from examhub.main import create_app
from examhub.models import utcnow
from examhub.schemas import ExamIn

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass"


class FakeMailer:
    """Records welcome notices instead of talking to SMTP."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send_welcome(self, notice):
        if notice.to in self.fail_for:
            raise ConnectionError("smtp unavailable")
        self.sent.append(notice)
        return True


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return Settings({"JWT_SECRET": "test-secret", "LOG_LEVEL": "WARNING"})


@pytest.fixture
def engine():
    """A fresh in-memory SQLite database per test."""
    eng = build_engine("sqlite://")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(settings, engine, mailer):
    return create_app(settings, engine=engine, mailer=mailer)


@pytest.fixture
def client(app):
    return TestClient(app)


def exam_payload(start: datetime, end: datetime, questions: Optional[List[Tuple[str, List[str], Optional[int]]]] = None, title: str = "Quiz") -> ExamIn:
    """Build an `ExamIn`; each question is `(text, option_texts, correct_index)`."""
    if questions is None:
        questions = [("Q1", ["a", "b"], 0), ("Q2", ["a", "b"], 1)]
    return ExamIn(
        title=title,
        description=f"{title} description",
        duration=30,
        start_time=start,
        end_time=end,
        questions=[
            {"text": text, "options": [{"text": o, "correct": i == correct} for i, o in enumerate(opts)]}
            for text, opts, correct in questions
        ],
    )


def create_exam(engine, start: datetime, end: datetime, questions=None, title: str = "Quiz") -> int:
    with Session(engine) as session:
        exam = services.ExamCatalogService(session).create_exam(exam_payload(start, end, questions, title))
        return exam.id


def create_open_exam(engine, questions=None, title: str = "Quiz") -> int:
    now = utcnow()
    return create_exam(engine, now - timedelta(hours=1), now + timedelta(hours=1), questions, title)


@pytest.fixture
def admin_headers(engine, settings, client):
    with Session(engine) as session:
        services.AuthService(session, settings).upsert_admin(ADMIN_EMAIL, "Root", ADMIN_PASSWORD)
    r = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['data']['token']}"}


def register(client, email="taker@example.com", username="taker", password="pass123"):
    r = client.post("/auth/register", json={"email": email, "username": username, "password": password})
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    return data["user"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def user_headers(client):
    _user, headers = register(client)
    return headers
