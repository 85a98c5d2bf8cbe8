"""
Management CLI for Requestarr.

Provides administrative commands that require shell access:
- Schema migrations
- Database health check
- Expired session cleanup
- Password reset for locked/forgotten accounts

Usage:
    requestarr migrate
    requestarr health
    requestarr purge-sessions
    requestarr reset-password
"""

import getpass
import json
import sys

import structlog

logger = structlog.get_logger()

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def migrate() -> None:
    """Apply pending schema migrations."""
    from requestarr.database import close_db, get_database_context
    from requestarr.migrations import MigrationError, pending_migrations, run_migrations

    db = get_database_context()
    try:
        pending = pending_migrations(db)
        if not pending:
            print("Database schema is up to date")
            return

        applied = run_migrations(db)
        for version in applied:
            print(f"Applied migration {version}")
    except MigrationError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        close_db()


def health() -> None:
    """Print the database health report; exit non-zero when unhealthy."""
    from requestarr.database import close_db, database_health_check, get_database_context

    try:
        report = database_health_check(get_database_context())
    finally:
        close_db()

    print(json.dumps(report, indent=2))
    if report["status"] != "healthy":
        sys.exit(1)


def purge_sessions() -> None:
    """Delete revoked and expired login sessions."""
    from requestarr.database import close_db, get_database_context
    from requestarr.services.sessions import SessionStore

    try:
        removed = SessionStore(get_database_context()).purge_expired_sessions()
    finally:
        close_db()

    print(f"Removed {removed} expired session(s)")


def reset_password() -> None:
    """Reset a user's password from the command line."""
    from requestarr.core.security import hash_password
    from requestarr.database import close_db, get_database_context
    from requestarr.services.sessions import SessionStore
    from requestarr.services.users import UserStore

    db = get_database_context()

    try:
        username = input("Username: ").strip()
        if not username:
            print("Error: Username cannot be empty")
            sys.exit(1)

        user = UserStore(db).get_user_by_username(username)
        if not user:
            print(f"Error: User '{username}' not found")
            sys.exit(1)

        new_password = getpass.getpass("New password: ")
        confirm_password = getpass.getpass("Confirm new password: ")

        if new_password != confirm_password:
            print("Error: Passwords do not match")
            sys.exit(1)

        if len(new_password) < MIN_PASSWORD_LENGTH:
            print(f"Error: Password must be at least {MIN_PASSWORD_LENGTH} characters long")
            sys.exit(1)
        if len(new_password) > MAX_PASSWORD_LENGTH:
            print(f"Error: Password must not exceed {MAX_PASSWORD_LENGTH} characters")
            sys.exit(1)

        UserStore(db).update_user_password_by_id(user.id, hash_password(new_password))
        revoked = SessionStore(db).revoke_all_sessions_for_user(user.id)
        logger.info("password_reset_from_cli", user_id=user.id, sessions_revoked=revoked)

        print(f"Password reset successfully for user '{username}'")
        if revoked:
            print(f"Signed out {revoked} active session(s).")

    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        close_db()


COMMANDS = {
    "migrate": (migrate, "Apply pending database migrations"),
    "health": (health, "Check database connectivity and pool status"),
    "purge-sessions": (purge_sessions, "Delete revoked and expired login sessions"),
    "reset-password": (reset_password, "Reset a user's password and sign out their sessions"),
}


def main() -> None:
    """CLI entry point."""
    if len(sys.argv) < 2:
        print("Usage: requestarr <command>")
        print("")
        print("Commands:")
        for name, (_, description) in COMMANDS.items():
            print(f"  {name:<18}{description}")
        sys.exit(1)

    command = sys.argv[1]
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        sys.exit(1)

    from requestarr.logging_config import configure_logging

    configure_logging(to_files=False)
    COMMANDS[command][0]()


if __name__ == "__main__":
    main()
