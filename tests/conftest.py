"""Root-level pytest fixtures for all tests.

Provides shared fixtures including:
- Database fixtures (in-memory SQLite with StaticPool)
- Relay configuration tuned for fast tests
- Fake clock and usage sink
"""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskrelay.config import RelayConfig, RetryConfig, SessionConfig
from taskrelay.db.models import Base
from taskrelay.services.session_persistence_service import SqlSessionStore
from taskrelay.services.usage import InMemoryUsageSink
from tests.helpers import FakeClock


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def relay_config() -> RelayConfig:
    """Relay configuration with zero backoff and fast write retries."""
    return RelayConfig(
        retry=RetryConfig(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0),
        session=SessionConfig(write_retries=2, write_retry_delay_seconds=0.0),
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Manually advanced monotonic clock."""
    return FakeClock()


@pytest.fixture
def usage_sink() -> InMemoryUsageSink:
    """Usage sink that keeps records for assertions."""
    return InMemoryUsageSink()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads.

    StaticPool keeps a single connection so tables created here are visible
    to sessions opened from worker threads.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> Generator[sessionmaker, None, None]:
    """Session factory bound to the in-memory engine."""
    yield sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def sql_store(session_factory) -> SqlSessionStore:
    """Durable session store on the in-memory database."""
    return SqlSessionStore(session_factory)
