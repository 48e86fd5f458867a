"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. Tables
are recreated for every test so single-active-goal and per-day suggestion
state never leaks between tests.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///./test_doglog.db"
os.environ["OPENAI_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, get_db
from app.dependencies import get_ai_client, get_goal_suggester
from app.main import app

SQLITE_URL = "sqlite:///./test_doglog.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ai_client] = lambda: None
    app.dependency_overrides[get_goal_suggester] = lambda: None
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_goal(client, title="Loose leash walking", steps=None, activate=True, **fields):
    body = {"title": title, "activate": activate, **fields}
    if steps is not None:
        body["steps"] = [{"title": s} if isinstance(s, str) else s for s in steps]
    r = client.post("/goals", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def attempt(client, step_id, outcome):
    r = client.post(f"/goal-steps/{step_id}/attempt", json={"outcome": outcome})
    assert r.status_code == 200, r.text
    return r.json()
