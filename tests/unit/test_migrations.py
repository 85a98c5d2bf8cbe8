"""
Unit tests for the migration runner.
"""

import pytest
from sqlalchemy import inspect

from requestarr.database import DatabaseContext
from requestarr.migrations import (
    MIGRATIONS,
    Migration,
    MigrationError,
    MigrationRunner,
    pending_migrations,
    run_migrations,
)
from requestarr.models import Job
from requestarr.models.job import DEFAULT_JOBS


@pytest.fixture
def fresh_db(tmp_path, test_settings):
    settings = test_settings.model_copy(update={"database_url": f"sqlite:///{tmp_path / 'fresh.db'}"})
    context = DatabaseContext.from_settings(settings)
    yield context
    context.dispose()


class TestMigrationRunner:
    """Test ordered, recorded, run-once migrations."""

    def test_applies_all_on_fresh_database(self, fresh_db):
        """Test that every migration runs and every table exists."""
        assert pending_migrations(fresh_db) == [m.version for m in MIGRATIONS]

        applied = run_migrations(fresh_db)

        assert applied == [m.version for m in MIGRATIONS]
        tables = set(inspect(fresh_db.engine).get_table_names())
        assert {"app_user", "media_request", "request_item", "user_session", "jobs", "schema_migrations"} <= tables

    def test_second_run_is_noop(self, fresh_db):
        run_migrations(fresh_db)

        assert run_migrations(fresh_db) == []
        assert pending_migrations(fresh_db) == []

    def test_default_jobs_seeded_once(self, fresh_db):
        """Test that default jobs are seeded and not duplicated."""
        run_migrations(fresh_db)
        run_migrations(fresh_db)

        with fresh_db.session() as session:
            names = sorted(name for (name,) in session.query(Job.name))
        assert names == sorted(job["name"] for job in DEFAULT_JOBS)

    def test_failing_migration_raises_and_is_not_recorded(self, fresh_db):
        """Test that a failure stops the run and leaves the migration pending."""

        def broken(session):
            raise RuntimeError("bad DDL")

        runner = MigrationRunner(fresh_db, [*MIGRATIONS, Migration("9999", "broken", broken)])

        with pytest.raises(MigrationError, match="9999_broken"):
            runner.run()

        assert runner.pending_migrations() == ["9999"]
        assert MigrationRunner(fresh_db).pending_migrations() == []
