"""
Unit tests for process startup/shutdown and the management CLI.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from requestarr import cli
from requestarr.core.security import PasswordSecurity
from requestarr.database import utcnow
from requestarr.main import Stores, build_stores, shutdown, startup
from requestarr.migrations import MIGRATIONS, MigrationError


@pytest.fixture
def file_settings(tmp_path, test_settings):
    return test_settings.model_copy(
        update={"database_url": f"sqlite:///{tmp_path / 'app.db'}", "log_dir": str(tmp_path / "logs")}
    )


class TestStartup:
    """Test bringing the data core up and down."""

    def test_startup_migrates_and_builds_stores(self, file_settings):
        stores = startup(file_settings)
        try:
            assert isinstance(stores, Stores)
            assert stores.jobs.get_job("request-sync") is not None
            assert stores.sliders.db is stores.db
        finally:
            shutdown(stores)

    def test_startup_without_migrations(self, file_settings):
        stores = startup(file_settings, migrate=False)
        try:
            from requestarr.migrations import pending_migrations

            assert pending_migrations(stores.db) == [m.version for m in MIGRATIONS]
        finally:
            shutdown(stores)

    def test_startup_logs_application_name(self, file_settings, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr("requestarr.main.logger", logger)
        named = file_settings.model_copy(update={"app_name": "Requests Test"})

        stores = startup(named)
        shutdown(stores)

        starting = logger.info.call_args_list[0]
        assert starting.args == ("application_starting",)
        assert starting.kwargs["app"] == "Requests Test"
        logger.info.assert_any_call("application_started", app="Requests Test")

    def test_startup_failure_disposes_pool(self, file_settings, monkeypatch):
        """Test that a failed migration is re-raised after the pool is released."""
        context = MagicMock()
        monkeypatch.setattr("requestarr.main.DatabaseContext", MagicMock(from_settings=MagicMock(return_value=context)))
        monkeypatch.setattr(
            "requestarr.main.run_migrations", MagicMock(side_effect=MigrationError("Migration 0001 failed"))
        )

        with pytest.raises(MigrationError):
            startup(file_settings)

        context.dispose.assert_called_once()

    def test_build_stores_shares_context(self, db, test_settings):
        stores = build_stores(db, test_settings)

        assert stores.requests.db is db
        assert stores.request_limits is not None


@pytest.fixture
def cli_db(db, monkeypatch):
    """Point the CLI's global database context at the test database."""
    monkeypatch.setattr("requestarr.database.get_database_context", lambda: db)
    monkeypatch.setattr("requestarr.database.close_db", lambda: None)
    return db


class TestCli:
    """Test the management commands."""

    def test_usage_without_command(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["requestarr"])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
        output = capsys.readouterr().out
        for name in cli.COMMANDS:
            assert name in output

    def test_unknown_command(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["requestarr", "frobnicate"])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1
        assert "Unknown command: frobnicate" in capsys.readouterr().out

    def test_migrate_up_to_date(self, cli_db, capsys):
        cli.migrate()

        assert "up to date" in capsys.readouterr().out

    def test_health(self, cli_db, capsys):
        cli.health()

        assert '"status": "healthy"' in capsys.readouterr().out

    def test_purge_sessions(self, cli_db, session_store, make_user, capsys):
        session_store.create_user_session(make_user(), "old", utcnow() - timedelta(minutes=1))

        cli.purge_sessions()

        assert "Removed 1 expired session(s)" in capsys.readouterr().out

    def test_reset_password(self, cli_db, user_store, session_store, make_user, test_settings, monkeypatch, capsys):
        """Test that a reset stores a new hash and signs the user out."""
        user_id = make_user("alice")
        session_store.create_user_session(user_id, "jti-1", utcnow() + timedelta(hours=1))
        security = PasswordSecurity(app_settings=test_settings)
        monkeypatch.setattr("requestarr.core.security.hash_password", security.hash_password)
        monkeypatch.setattr("builtins.input", lambda prompt: "alice")
        monkeypatch.setattr("getpass.getpass", lambda prompt: "correct horse battery")

        cli.reset_password()

        assert "Password reset successfully for user 'alice'" in capsys.readouterr().out
        stored = user_store.get_user_with_hash("alice").password_hash
        assert security.verify_password("correct horse battery", stored)
        assert session_store.is_session_active("jti-1") is False

    @pytest.mark.parametrize(
        ("username", "passwords", "message"),
        [
            ("", ["longenough", "longenough"], "Username cannot be empty"),
            ("ghost", ["longenough", "longenough"], "User 'ghost' not found"),
            ("alice", ["longenough", "different1"], "Passwords do not match"),
            ("alice", ["short", "short"], "at least 8 characters"),
        ],
    )
    def test_reset_password_rejections(self, cli_db, make_user, monkeypatch, capsys, username, passwords, message):
        make_user("alice")
        answers = iter(passwords)
        monkeypatch.setattr("builtins.input", lambda prompt: username)
        monkeypatch.setattr("getpass.getpass", lambda prompt: next(answers))

        with pytest.raises(SystemExit) as exc_info:
            cli.reset_password()

        assert exc_info.value.code == 1
        assert message in capsys.readouterr().out
