from __future__ import annotations

import os
import tempfile

# Point the app at a throwaway SQLite file BEFORE importing app modules
_TMP_DIR = tempfile.mkdtemp(prefix="crewops-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'crewops-test.db')}"
os.environ["SECONDARY_DATABASE_URL"] = ""
os.environ["BACKGROUND_POLLERS_ENABLED"] = "0"
os.environ["STORE_RETRY_DELAY_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import build_app  # noqa: E402
from app.services import store  # noqa: E402

Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    store.forget_all()


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    with TestClient(build_app()) as c:
        yield c
