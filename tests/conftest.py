"""Pytest configuration and fixtures."""

import os
import secrets
import tempfile
from collections.abc import Callable, Generator

import pytest

# Set test environment variables BEFORE importing any application code
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "INFO"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="requestarr-logs-")
os.environ["SECRET_KEY"] = secrets.token_urlsafe(64)
os.environ["PEPPER"] = secrets.token_urlsafe(32)
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
# Cheap Argon2 parameters keep hashing fast in tests
os.environ["ARGON2_MEMORY_COST"] = "8192"
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_PARALLELISM"] = "1"

from requestarr.config import Settings
from requestarr.database import DatabaseContext
from requestarr.migrations import run_migrations
from requestarr.services import RequestStore, SessionStore, SettingsStore, UserStore


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings with secure defaults."""
    return Settings(
        environment="test",
        log_level="INFO",
        secret_key=secrets.token_urlsafe(64),
        pepper=secrets.token_urlsafe(32),
        database_url="sqlite:///:memory:",
        argon2_memory_cost=8192,
        argon2_time_cost=1,
        argon2_parallelism=1,
    )


@pytest.fixture(scope="function")
def db(tmp_path, test_settings) -> Generator[DatabaseContext, None, None]:
    """Migrated database context over a throwaway SQLite file."""
    settings = test_settings.model_copy(update={"database_url": f"sqlite:///{tmp_path / 'requestarr.db'}"})
    context = DatabaseContext.from_settings(settings)
    run_migrations(context)

    yield context

    context.dispose()


@pytest.fixture
def user_store(db, test_settings) -> UserStore:
    return UserStore(db, app_settings=test_settings)


@pytest.fixture
def request_store(db) -> RequestStore:
    return RequestStore(db)


@pytest.fixture
def session_store(db) -> SessionStore:
    return SessionStore(db)


@pytest.fixture
def settings_store(db, test_settings) -> SettingsStore:
    return SettingsStore(db, app_settings=test_settings)


@pytest.fixture
def make_user(user_store) -> Callable[..., int]:
    """Factory creating a user and returning its id."""
    counter = {"n": 0}

    def _make_user(username: str | None = None, groups=("user",)) -> int:
        counter["n"] += 1
        return user_store.upsert_user(username or f"user{counter['n']}", groups)

    return _make_user
