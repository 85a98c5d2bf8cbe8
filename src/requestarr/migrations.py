"""
Explicit, ordered schema migrations.

Migrations run once at process startup (``requestarr.main.startup`` or
``requestarr migrate``), never lazily on first query. Each migration is
applied in its own transaction and recorded in ``schema_migrations``; a
migration that is already recorded is skipped. On PostgreSQL a
transaction-scoped advisory lock serializes concurrent runners.
"""

from collections.abc import Callable
from dataclasses import dataclass

import structlog
from sqlalchemy import Column, DateTime, String, select, text
from sqlalchemy.orm import Session

from requestarr import models  # noqa: F401  (registers every table on Base.metadata)
from requestarr.database import Base, DatabaseContext, dialect_insert, utcnow
from requestarr.models.job import DEFAULT_JOBS, Job

logger = structlog.get_logger()

# Arbitrary constant shared by every runner of this application
MIGRATION_LOCK_KEY = 727_150_101


class MigrationError(Exception):
    """Raised when a migration fails to apply."""

    pass


class SchemaMigration(Base):
    """Record of an applied migration."""

    __tablename__ = "schema_migrations"

    version = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    applied_at = Column(DateTime, default=utcnow, nullable=False)


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    apply: Callable[[Session], None]


def _initial_schema(session: Session) -> None:
    Base.metadata.create_all(bind=session.connection(), checkfirst=True)


def _seed_default_jobs(session: Session) -> None:
    rows = [
        {
            "name": job["name"],
            "schedule": job["schedule"],
            "interval_seconds": job["interval_seconds"],
            "type": "system",
            "enabled": True,
            "run_on_start": job["run_on_start"],
            "failure_count": 0,
        }
        for job in DEFAULT_JOBS
    ]
    stmt = dialect_insert(session.get_bind().dialect.name, Job).values(rows)
    session.execute(stmt.on_conflict_do_nothing(index_elements=["name"]))


MIGRATIONS: list[Migration] = [
    Migration("0001", "initial_schema", _initial_schema),
    Migration("0002", "seed_default_jobs", _seed_default_jobs),
]


class MigrationRunner:
    """
    Applies pending migrations against a database context.

    Example:
        >>> runner = MigrationRunner(db)
        >>> runner.run()
        ['0001', '0002']
        >>> runner.run()
        []
    """

    def __init__(self, db: DatabaseContext, migrations: list[Migration] | None = None):
        self.db = db
        self.migrations = migrations if migrations is not None else MIGRATIONS

    def _ensure_version_table(self) -> None:
        with self.db.engine.begin() as conn:
            SchemaMigration.__table__.create(bind=conn, checkfirst=True)

    def _lock(self, session: Session) -> None:
        if self.db.dialect_name == "postgresql":
            session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": MIGRATION_LOCK_KEY})

    def applied_versions(self) -> set[str]:
        self._ensure_version_table()
        with self.db.session() as session:
            return set(session.scalars(select(SchemaMigration.version)).all())

    def pending_migrations(self) -> list[str]:
        """Versions not yet recorded as applied, in application order."""
        applied = self.applied_versions()
        return [m.version for m in self.migrations if m.version not in applied]

    def _apply(self, migration: Migration) -> bool:
        try:
            with self.db.transaction() as session:
                self._lock(session)
                # Another runner may have applied it while we waited for the lock
                if session.get(SchemaMigration, migration.version) is not None:
                    return False

                logger.info("migration_applying", version=migration.version, name=migration.name)
                migration.apply(session)
                session.add(SchemaMigration(version=migration.version, name=migration.name))
        except Exception as e:
            logger.error(
                "migration_failed",
                version=migration.version,
                name=migration.name,
                error=str(e),
            )
            raise MigrationError(f"Migration {migration.version}_{migration.name} failed: {e}") from e

        logger.info("migration_applied", version=migration.version, name=migration.name)
        return True

    def run(self) -> list[str]:
        """
        Apply every pending migration in order.

        Returns:
            list[str]: Versions applied by this call (empty when up to date)

        Raises:
            MigrationError: If a migration fails; later migrations are not attempted
        """
        try:
            self._ensure_version_table()
        except Exception as e:
            logger.error("migration_table_creation_failed", error=str(e))
            raise MigrationError(f"Failed to create schema_migrations table: {e}") from e

        applied = [m.version for m in self.migrations if self._apply(m)]

        logger.info("migrations_complete", applied=applied, total=len(self.migrations))
        return applied


def run_migrations(db: DatabaseContext) -> list[str]:
    """Apply pending migrations on a database context."""
    return MigrationRunner(db).run()


def pending_migrations(db: DatabaseContext) -> list[str]:
    return MigrationRunner(db).pending_migrations()
