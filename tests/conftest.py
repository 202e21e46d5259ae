"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Database fixtures (in-memory SQLite through the Database owner)
- A fake tag client
- Engine wiring with pacing and retry delays disabled
"""

from collections.abc import Generator

import pytest
from sqlalchemy.orm import Session

from src.db.connection import Database
from src.services.job_recorder import JobRecorder
from src.services.pacer import Pacer
from src.services.retry import RetryPolicy
from src.services.tag_mutation_engine import TagMutationEngine
from src.services.tag_usage_service import TagUsageService
from tests.helpers import FakeTagClient


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Open an in-memory database with all tables created."""
    db = Database("sqlite:///:memory:").open()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_session(database: Database) -> Generator[Session, None, None]:
    """Session bound to the in-memory database."""
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def recorder(db_session: Session) -> JobRecorder:
    return JobRecorder(db_session)


@pytest.fixture
def usage_service(db_session: Session) -> TagUsageService:
    return TagUsageService(db_session)


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def fake_client() -> FakeTagClient:
    return FakeTagClient()


@pytest.fixture
def make_engine(fake_client, recorder, usage_service):
    """Factory for engines with zero pacing and zero retry delay."""

    def _make(**overrides) -> TagMutationEngine:
        kwargs = {
            "tag_client": fake_client,
            "recorder": recorder,
            "usage_service": usage_service,
            "pacer": Pacer(0),
            "retry_policy": RetryPolicy(max_attempts=3, base_delay=0),
            "shop": "test-shop",
        }
        kwargs.update(overrides)
        return TagMutationEngine(**kwargs)

    return _make
