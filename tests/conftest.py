"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from staffquest.database.engine import create_db_engine, enable_sqlite_savepoints, init_db
from staffquest.engine.locks import UserLockRegistry
from staffquest.engine.rules import ProgressionRules
from staffquest.services.progression_service import ProgressionEngine
from tests.support import TAIPEI, FixedClock, local


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all StaffQuest tables and the badge seed.

    Uses StaticPool so every thread shares the same in-memory database
    (required by ``asyncio.to_thread`` in the webhook route).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    init_db(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine for tests that hit it from several threads."""
    engine = create_db_engine(
        f"sqlite:///{tmp_path / 'staffquest.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Session on the in-memory engine, rolled back after the test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(local(2026, 3, 2, 12).astimezone(UTC))


@pytest.fixture
def rules() -> ProgressionRules:
    return ProgressionRules()


@pytest.fixture
def progression(db_engine: Engine, rules: ProgressionRules, clock: FixedClock) -> ProgressionEngine:
    """A ready engine on the in-memory database with its own lock registry."""
    return ProgressionEngine(
        db_engine,
        rules,
        locks=UserLockRegistry(),
        clock=clock,
        timezone=TAIPEI,
    )


@pytest.fixture
def client(progression: ProgressionEngine):
    """FastAPI TestClient wired to the in-memory ``progression`` engine."""
    from fastapi.testclient import TestClient

    from staffquest.api.deps import get_progression_engine
    from staffquest.api.main import app

    app.dependency_overrides[get_progression_engine] = lambda: progression
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
