"""
Unit tests for login session storage.

Tests idempotent creation, activity tracking and revocation.
"""

from datetime import timedelta

from requestarr.database import utcnow
from requestarr.models import UserSession


def _future(hours: int = 1):
    return utcnow() + timedelta(hours=hours)


def _session_row(db, jti: str) -> UserSession | None:
    with db.session() as session:
        return session.query(UserSession).filter(UserSession.jti == jti).first()


class TestCreateUserSession:
    """Test session creation."""

    def test_create_is_idempotent_on_jti(self, db, session_store, make_user):
        """Test that a repeated jti leaves exactly one row and raises nothing."""
        user_id = make_user()

        session_store.create_user_session(user_id, "jti-1", _future(), user_agent="Firefox")
        session_store.create_user_session(user_id, "jti-1", _future(2), user_agent="Chrome")

        with db.session() as session:
            rows = session.query(UserSession).filter(UserSession.jti == "jti-1").all()
        assert len(rows) == 1
        assert rows[0].user_agent == "Firefox"

    def test_new_session_is_active(self, session_store, make_user):
        session_store.create_user_session(make_user(), "jti-1", _future())

        assert session_store.is_session_active("jti-1") is True
        assert session_store.is_session_active("unknown") is False


class TestTouchUserSession:
    """Test last-seen updates."""

    def test_touch_active_session(self, db, session_store, make_user):
        """Test that an active session is touched."""
        session_store.create_user_session(make_user(), "jti-1", _future())
        with db.transaction() as session:
            session.query(UserSession).update({UserSession.last_seen_at: utcnow() - timedelta(hours=1)})
        before = _session_row(db, "jti-1").last_seen_at

        assert session_store.touch_user_session("jti-1") is True
        assert _session_row(db, "jti-1").last_seen_at > before

    def test_touch_revoked_session_writes_nothing(self, db, session_store, make_user):
        """Test that a revoked session is neither touched nor reported active."""
        session_store.create_user_session(make_user(), "jti-1", _future())
        session_store.revoke_session_by_jti("jti-1")
        before = _session_row(db, "jti-1").last_seen_at

        assert session_store.touch_user_session("jti-1") is False
        assert _session_row(db, "jti-1").last_seen_at == before

    def test_touch_expired_session_writes_nothing(self, db, session_store, make_user):
        session_store.create_user_session(make_user(), "jti-1", utcnow() - timedelta(seconds=1))
        before = _session_row(db, "jti-1").last_seen_at

        assert session_store.touch_user_session("jti-1") is False
        assert session_store.is_session_active("jti-1") is False
        assert _session_row(db, "jti-1").last_seen_at == before


class TestRevocation:
    """Test revocation scopes."""

    def test_revoke_for_user_checks_owner(self, session_store, make_user):
        owner = make_user()
        other = make_user()
        session_store.create_user_session(owner, "jti-1", _future())

        assert session_store.revoke_session_by_jti_for_user(other, "jti-1") is False
        assert session_store.revoke_session_by_jti_for_user(owner, "jti-1") is True
        assert session_store.revoke_session_by_jti_for_user(owner, "jti-1") is False

    def test_revoke_other_sessions_keeps_current(self, session_store, make_user):
        user_id = make_user()
        for jti in ("current", "laptop", "phone"):
            session_store.create_user_session(user_id, jti, _future())

        assert session_store.revoke_other_sessions_for_user(user_id, "current") == 2
        assert session_store.is_session_active("current") is True
        assert session_store.is_session_active("phone") is False

    def test_revoke_all_sessions(self, session_store, make_user):
        user_id = make_user()
        session_store.create_user_session(user_id, "a", _future())
        session_store.create_user_session(user_id, "b", _future())

        assert session_store.revoke_all_sessions_for_user(user_id) == 2
        assert session_store.revoke_all_sessions_for_user(user_id) == 0


class TestListingAndCleanup:
    """Test session listings and purge."""

    def test_list_user_sessions_most_recent_first(self, db, session_store, make_user):
        user_id = make_user()
        session_store.create_user_session(user_id, "old", _future())
        session_store.create_user_session(user_id, "new", _future())
        with db.transaction() as session:
            session.query(UserSession).filter(UserSession.jti == "old").update(
                {UserSession.last_seen_at: utcnow() - timedelta(days=1)}
            )

        sessions = session_store.list_user_sessions(user_id)

        assert [s["jti"] for s in sessions] == ["new", "old"]

    def test_list_all_sessions_includes_username(self, session_store, make_user):
        session_store.create_user_session(make_user("alice"), "a", _future())

        sessions = session_store.list_all_user_sessions()

        assert sessions[0]["username"] == "alice"

    def test_delete_session_for_user(self, session_store, make_user):
        owner = make_user()
        session_store.create_user_session(owner, "a", _future())

        assert session_store.delete_user_session_by_jti_for_user(make_user(), "a") is False
        assert session_store.delete_user_session_by_jti_for_user(owner, "a") is True
        assert session_store.delete_user_session_by_jti("a") is False

    def test_purge_removes_revoked_and_expired(self, session_store, make_user):
        user_id = make_user()
        session_store.create_user_session(user_id, "live", _future())
        session_store.create_user_session(user_id, "revoked", _future())
        session_store.create_user_session(user_id, "expired", utcnow() - timedelta(minutes=1))
        session_store.revoke_session_by_jti("revoked")

        assert session_store.purge_expired_sessions() == 2
        assert [s["jti"] for s in session_store.list_user_sessions(user_id)] == ["live"]
