"""
Database connection pool and session management.

This module provides:
- Engine construction from validated settings (pool sizing, timeouts, keepalive)
- A dependency-injected DatabaseContext owning the engine and session factory
- Scoped sessions and transactions that release their connection exactly once
- Dialect-aware INSERT constructs for ON CONFLICT upserts
- Health checks and engine error logging
"""

import math
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import create_engine, event, pool, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.engine.interfaces import ExceptionContext
from sqlalchemy.exc import ArgumentError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from requestarr.config import Settings

logger = structlog.get_logger()

# SQLAlchemy Base for models
Base = declarative_base()

UNIQUE_VIOLATION_SQLSTATE = "23505"


class DatabaseConfigurationError(RuntimeError):
    """Raised when the database connection settings are missing or invalid."""

    pass


def utcnow() -> datetime:
    """Naive UTC timestamp used for every stored datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
    """
    Set SQLite PRAGMA settings on each new connection.

    Configures:
    - Busy timeout so concurrent writers wait instead of failing
    - Foreign key constraints (ON DELETE CASCADE relies on them)
    - Write-Ahead Logging for file databases

    Args:
        dbapi_conn: DBAPI connection object
        connection_record: SQLAlchemy connection record
    """
    cursor = dbapi_conn.cursor()

    try:
        cursor.execute("PRAGMA busy_timeout = 5000")
        cursor.execute("PRAGMA foreign_keys = ON")

        result = cursor.execute("PRAGMA database_list").fetchall()
        is_memory = any(row[2] in (":memory:", "") for row in result)
        if not is_memory:
            cursor.execute("PRAGMA journal_mode = WAL")

        logger.debug("sqlite_pragma_set", connection_id=id(dbapi_conn))

    except Exception as e:
        logger.error("failed_to_set_sqlite_pragma", error=str(e))
        raise
    finally:
        cursor.close()


def log_database_error(context: ExceptionContext) -> None:
    """Log driver-level errors without altering the exception that propagates."""
    logger.error(
        "database_error",
        error=str(context.original_exception),
        error_type=type(context.original_exception).__name__,
        is_disconnect=context.is_disconnect,
    )


def _engine_options(url: URL, app_settings: Settings) -> dict[str, Any]:
    """Translate pool settings into create_engine keyword arguments."""
    connect_timeout = app_settings.db_pool_connection_timeout / 1000

    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {
            "connect_args": {"check_same_thread": False, "timeout": max(connect_timeout, 5.0)},
        }
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = pool.StaticPool
        return options

    pool_size = max(app_settings.db_pool_min, 1)
    connect_args: dict[str, Any] = {
        "connect_timeout": max(1, math.ceil(connect_timeout)),
    }

    # The server aborts anything running longer than the tighter of the two timeouts
    timeouts = [t for t in (app_settings.db_statement_timeout, app_settings.db_query_timeout) if t > 0]
    if timeouts:
        connect_args["options"] = f"-c statement_timeout={min(timeouts)}"

    if app_settings.db_keep_alive:
        connect_args["keepalives"] = 1
        connect_args["keepalives_idle"] = 10

    return {
        "poolclass": pool.QueuePool,
        "pool_size": pool_size,
        "max_overflow": max(app_settings.db_pool_max - pool_size, 0),
        "pool_timeout": connect_timeout,
        "pool_recycle": max(1, app_settings.db_pool_idle_timeout // 1000),
        "pool_pre_ping": app_settings.db_keep_alive,
        "connect_args": connect_args,
    }


def create_database_engine(app_settings: Settings | None = None) -> Engine:
    """
    Create and configure the SQLAlchemy engine.

    Args:
        app_settings: Settings to build from (defaults to the global settings)

    Returns:
        Engine: Configured SQLAlchemy engine

    Raises:
        DatabaseConfigurationError: If the database URL is missing or invalid
        RuntimeError: If the engine cannot be created for any other reason
    """
    if app_settings is None:
        from requestarr.config import settings as app_settings

    try:
        url = make_url(app_settings.get_database_url())
    except (RuntimeError, ArgumentError) as e:
        logger.error("invalid_database_configuration", error=str(e))
        raise DatabaseConfigurationError(f"Invalid database configuration: {e}") from e

    try:
        engine = create_engine(
            url,
            echo=app_settings.log_level == "DEBUG",
            hide_parameters=app_settings.environment == "production",
            **_engine_options(url, app_settings),
        )
    except ArgumentError as e:
        logger.error("invalid_database_configuration", error=str(e))
        raise DatabaseConfigurationError(f"Invalid database configuration: {e}") from e
    except Exception as e:
        logger.error("failed_to_create_database_engine", error=str(e))
        raise RuntimeError(f"Failed to create database engine: {e}") from e

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", set_sqlite_pragma)
    event.listen(engine, "handle_error", log_database_error)

    logger.info(
        "database_engine_created",
        dialect=engine.dialect.name,
        environment=app_settings.environment,
        pool_max=app_settings.db_pool_max,
        pool_min=app_settings.db_pool_min,
    )

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Create a session factory for database operations.

    Args:
        engine: SQLAlchemy engine

    Returns:
        sessionmaker: Session factory
    """
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Rows stay readable after the session closes
    )


def safe_rollback(session: Session) -> None:
    """Roll back, logging a rollback failure instead of masking the original error."""
    try:
        session.rollback()
    except Exception as e:
        logger.error("transaction_rollback_failed", error=str(e))


class DatabaseContext:
    """
    Owns the engine and session factory handed to every store.

    Stores never reach for module globals; tests build a context over a
    throwaway database and pass it in.
    """

    def __init__(self, engine: Engine, session_factory: sessionmaker[Session] | None = None):
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "DatabaseContext":
        """Build a context from settings, failing fast on bad configuration."""
        return cls(create_database_engine(app_settings))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Scoped session; the connection goes back to the pool on exit."""
        session = self.session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Scoped session committed on success and rolled back on any error."""
        with self.session() as session:
            try:
                yield session
                session.commit()
            except Exception:
                safe_rollback(session)
                raise

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("database_connections_closed")


def dialect_insert(dialect_name: str, table: Any) -> Any:
    """
    Return an INSERT construct that supports ON CONFLICT for the dialect.

    Args:
        dialect_name: Name of the engine dialect
        table: Mapped class or Table to insert into

    Raises:
        NotImplementedError: For dialects without ON CONFLICT support
    """
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect_name}'")


def is_unique_violation(exc: IntegrityError) -> bool:
    """Whether an IntegrityError was caused by a duplicate key."""
    orig = getattr(exc, "orig", exc)

    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == UNIQUE_VIOLATION_SQLSTATE

    errorname = getattr(orig, "sqlite_errorname", None)
    if errorname:
        return errorname in ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")

    return "unique constraint" in str(orig).lower()


def check_database_health(db: DatabaseContext) -> bool:
    """
    Issue a trivial round trip to the database.

    Returns:
        bool: True if the database answered, False otherwise (never raises)
    """
    try:
        with db.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False


def database_health_check(db: DatabaseContext) -> dict[str, Any]:
    """
    Perform a database health check with pool statistics.

    Example response:
        {
            "status": "healthy",
            "dialect": "postgresql",
            "connection_pool": {"size": 2, "checked_out": 1, "overflow": 0}
        }
    """
    if not check_database_health(db):
        return {"status": "unhealthy", "dialect": db.dialect_name}

    pool_status: dict[str, Any] = {}
    engine_pool = db.engine.pool
    for name, attr in (("size", "size"), ("checked_out", "checkedout"), ("overflow", "overflow")):
        method = getattr(engine_pool, attr, None)
        if callable(method):
            pool_status[name] = method()
    if not pool_status:
        pool_status["type"] = type(engine_pool).__name__

    return {
        "status": "healthy",
        "dialect": db.dialect_name,
        "connection_pool": pool_status,
    }


# Process-wide context for entry points (lazy initialization)
_context: DatabaseContext | None = None


def get_database_context() -> DatabaseContext:
    """
    Get or create the process-wide database context.

    Note:
        Only entry points (CLI, application startup) use this. Stores always
        receive their context explicitly.
    """
    global _context
    if _context is None:
        _context = DatabaseContext.from_settings()
    return _context


def close_db() -> None:
    """Dispose of the process-wide engine, if one was created."""
    global _context
    if _context is not None:
        _context.dispose()
        _context = None
