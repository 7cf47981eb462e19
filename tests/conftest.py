import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ESCALATION_ENABLED", "0")

from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.main import app
from odflow.core.database import Base, get_db
from odflow.crud.od_request import create_request
from odflow.models.practice import PracticeWeek
from odflow.utils import audit_sink, runtime_config


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture(autouse=True)
def _isolate_side_channels(tmp_path, monkeypatch):
    monkeypatch.setattr(audit_sink, "AUDIT_DIR", tmp_path / "audit")
    runtime_config.set_slack_webhook("")


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(client, username, role, department=None):
    r = client.post("/auth/login", json={"username": username, "role": role, "department": department})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def add_week(db, student_id, start, easy=0, medium=0, hard=0, week_number=1):
    w = PracticeWeek(
        student_id=student_id, week_number=week_number,
        start_date=start, end_date=start + timedelta(days=7),
        easy=easy, medium=medium, hard=hard, problems_solved=easy + medium + hard,
        target_problems=7, status="in-progress",
    )
    db.add(w)
    db.commit()
    return w


def seed_request(db, submitted_at, student_id="s1", department="CSE", **overrides):
    """Insert a request directly, skipping the submission gate."""
    fields = dict(
        student_id=student_id,
        student_name=f"Student {student_id}",
        roll_number=f"R-{student_id}",
        department=department,
        year="2nd",
        from_date=(submitted_at - timedelta(days=2)).date(),
        to_date=(submitted_at - timedelta(days=1)).date(),
        reason="workshop",
        detailed_reason="Cloud workshop",
        od_periods=["09:00-10:00"],
    )
    status = overrides.pop("status", None)
    fields.update(overrides)
    req = create_request(db, fields, submitted_at)
    if status is not None:
        req.status = status
        db.commit()
        db.refresh(req)
    return req


@pytest.fixture()
def now():
    return datetime(2025, 3, 10, 9, 0, 0)


@pytest.fixture()
def today(now) -> date:
    return now.date()
