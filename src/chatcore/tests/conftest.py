"""
Core pytest configuration for the entire test suite.

This module provides only the database setup and logging installation shared
by every kind of test. Domain fixtures live in:
- tests/test_fixtures/repository_fixtures.py
- tests/test_fixtures/service_fixtures.py
"""

import logging
import os
from typing import AsyncGenerator
from urllib.parse import urlparse

# Noisy third-party loggers are tuned before anything imports them.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from chatcore.config.settings import Settings
from chatcore.core.logging.builder import setup_logging, stop_queue_logging
from chatcore.database.base import Base
from chatcore.database.session import build_sessionmaker
from chatcore import models  # noqa: F401 - registers models with Base.metadata

logger = logging.getLogger(__name__)


def make_test_settings(**overrides) -> Settings:
    """Settings isolated from any local .env file."""
    values = {"ENV": "testing", "TESTING": True, "LOG_LEVEL": "DEBUG", "LOG_FORMAT": "json"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


settings = make_test_settings()


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the application's dictConfig once for the session.

    pytest attaches its capture handlers per test phase, after this runs, so
    `caplog` keeps working.
    """
    setup_logging(settings)

    yield

    stop_queue_logging()


def safe_log_db_url(db_url: str) -> str:
    """Database URL without credentials, for logging."""
    parsed = urlparse(db_url)
    return f"{parsed.scheme}://{parsed.hostname or ''}:{parsed.port or ''}/{parsed.path.lstrip('/')}"


def get_test_database_url() -> str:
    """
    Priority:
      1. TEST_DATABASE_URL environment variable (CI override)
      2. in-memory SQLite, one fresh database per test
    """
    return os.getenv("TEST_DATABASE_URL") or "sqlite+aiosqlite://"


TEST_DATABASE_URL = get_test_database_url()
logger.info("tests.database", extra={"url": safe_log_db_url(TEST_DATABASE_URL)})


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------

@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    A fresh schema per test.

    For in-memory SQLite every connection would otherwise see its own empty
    database, so a StaticPool shares the single connection.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine: AsyncEngine):
    return build_sessionmaker(async_engine)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    The session a test works with. Services commit on it; isolation comes from
    the per-test schema rather than from an outer transaction.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture()
def test_settings() -> Settings:
    return make_test_settings()


from .test_fixtures.repository_fixtures import (  # noqa: E402,F401
    id_generator,
    user_repository,
    conversation_repository,
    membership_repository,
    message_repository,
    create_user,
    alice,
    bob,
    carol,
    dave,
)
from .test_fixtures.service_fixtures import (  # noqa: E402,F401
    directory,
    timeline,
    group,
    direct,
)
