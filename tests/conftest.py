"""Pytest fixtures and configuration for cadence tests."""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from cadence.database.database import Base
from cadence.database.locks import LocalLockManager
from cadence.engine.clock import FixedClock
from cadence.engine.orchestrator import SchedulerOrchestrator
from cadence.integrations.notifications import RecordingNotificationDispatcher
from cadence.recurrence.instances import TemplateInstanceManager


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Wednesday
TEST_NOW = datetime(2026, 3, 4, 9, 0)


@pytest.fixture(scope="function")
def test_engine():
    """In-memory SQLite engine with a fresh schema per test.

    StaticPool keeps every session on the same connection so they all see one
    database. Foreign keys are enabled by the engine-wide connect listener.
    """
    from cadence.database import models  # noqa: F401

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    """Create a database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(TEST_NOW)


@pytest.fixture
def dispatcher():
    return RecordingNotificationDispatcher()


@pytest.fixture
def lock_manager():
    return LocalLockManager(timeout=2.0)


@pytest.fixture
def manager(db_session, clock, lock_manager):
    return TemplateInstanceManager(db_session, clock=clock, lock_manager=lock_manager)


@pytest.fixture
def sleeps():
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def orchestrator(session_factory, dispatcher, clock, lock_manager, sleeps):
    return SchedulerOrchestrator(
        session_factory,
        dispatcher=dispatcher,
        clock=clock,
        lock_manager=lock_manager,
        sleep=sleeps.append,
    )


@pytest.fixture
def owner_id():
    """Owner ID for multi-user testing."""
    return "owner-123"


@pytest.fixture
def list_id():
    return "list-456"


@pytest.fixture
def daily_rule():
    """Daily at 08:00."""
    return {"pattern": "daily", "interval": 1, "time_of_day": "08:00"}


@pytest.fixture
def sample_fields():
    """Base template fields that can be overridden."""
    return {
        "title": "Water the plants",
        "note": "Both balconies",
        "priority": "medium",
        "strict_mode": False,
        "requires_explanation_if_missed": False,
        "notification_interval_minutes": 10,
    }


@pytest.fixture
def make_overdue(manager, owner_id, list_id, daily_rule, clock):
    """Create a template whose first instance became due `minutes` ago."""

    def _make(minutes: int, **overrides):
        fields = {
            "title": overrides.pop("title", f"Overdue task {minutes}"),
            "priority": overrides.pop("priority", "urgent"),
            "strict_mode": overrides.pop("strict_mode", True),
            "notification_interval_minutes": overrides.pop("notification_interval_minutes", 10),
            **overrides,
        }
        due_at = clock.now() - timedelta(minutes=minutes)
        return manager.create_template(owner_id, list_id, fields, daily_rule, due_at=due_at)

    return _make
