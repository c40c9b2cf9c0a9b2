"""
Shared pytest fixtures.

The application reads its configuration from the environment at import time,
so the database and storage locations are pointed at a scratch directory
before anything from ``innovation_hub`` is imported. Every test starts from
freshly created tables and an empty storage directory.
"""
import os
import shutil
import tempfile
from datetime import timedelta

import pytest

_SCRATCH = tempfile.mkdtemp(prefix="innovation-hub-tests-")
os.environ["HUB_DATABASE_URL"] = f"sqlite:///{os.path.join(_SCRATCH, 'test.db')}"
os.environ["HUB_DATA_DIR"] = os.path.join(_SCRATCH, "data")
os.environ.setdefault("SECRET_KEY", "test-secret")

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from innovation_hub.auth import COOKIE_NAME, issue_token
from innovation_hub.config import STORAGE_DIR
from innovation_hub.db import drop_db, engine, init_db
from innovation_hub.main import app
from innovation_hub.models import Challenge, ChallengeStatus, ChallengeSubmission, SubmissionStatus, User, utcnow

LONG_DESCRIPTION = "A detailed description of the proposed idea that easily clears fifty chars."
LONG_APPROACH = (
    "The approach combines roadside sensors, a lightweight data pipeline and a dashboard "
    "so maintenance crews can act before small defects turn into expensive repairs."
)
LONG_PLAN = "Pilot on one corridor for three months, then roll out region by region."


@pytest.fixture(autouse=True)
def fresh_db():
    drop_db()
    init_db()
    shutil.rmtree(STORAGE_DIR, ignore_errors=True)
    STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    yield


@pytest.fixture
def make_user():
    def _make(username="participant", roles="user", display_name=None):
        with Session(engine) as session:
            user = User(
                username=username,
                password_hash="not-used",
                display_name=display_name or username.title(),
                roles=roles,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user
    return _make


@pytest.fixture
def make_challenge():
    def _make(author, **overrides):
        values = {
            "title": "Smart pothole detection",
            "description": "Detect potholes early using cheap sensors mounted on service vehicles.",
            "category": "technology",
            "status": ChallengeStatus.ACTIVE,
            "deadline": utcnow() + timedelta(days=10),
            "prize_description": "KES 100,000 and a pilot contract",
            "requirements": ["Working prototype", "Cost estimate"],
        }
        values.update(overrides)
        with Session(engine) as session:
            challenge = Challenge(author_id=author.id, **values)
            session.add(challenge)
            session.commit()
            session.refresh(challenge)
            return challenge
    return _make


@pytest.fixture
def make_submission():
    def _make(challenge, author, **overrides):
        values = {
            "title": "Existing submission",
            "description": LONG_DESCRIPTION,
            "solution_approach": LONG_APPROACH,
            "implementation_plan": LONG_PLAN,
            "status": SubmissionStatus.SUBMITTED,
        }
        values.update(overrides)
        with Session(engine) as session:
            submission = ChallengeSubmission(challenge_id=challenge.id, author_id=author.id, **values)
            session.add(submission)
            session.commit()
            session.refresh(submission)
            return submission
    return _make


@pytest.fixture
def client_for():
    def _client(user=None):
        client = TestClient(app)
        if user is not None:
            client.cookies.set(COOKIE_NAME, issue_token(user))
        return client
    return _client


@pytest.fixture
def valid_form():
    return {
        "title": "Sensor network for potholes",
        "description": LONG_DESCRIPTION,
        "solution_approach": LONG_APPROACH,
        "implementation_plan": LONG_PLAN,
    }


def all_rows(model):
    with Session(engine) as session:
        return session.exec(select(model)).all()
