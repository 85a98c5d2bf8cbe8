"""
Login session store for Requestarr.

Sessions are keyed by the token identifier (jti) the client presents. A
session is active while it is neither revoked nor expired; revoked and expired
rows are removed by the session-cleanup job.
"""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import or_

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import User, UserSession

logger = structlog.get_logger()


def _session_dict(row: UserSession, username: str | None = None) -> dict[str, Any]:
    data = {
        "id": row.id,
        "user_id": row.user_id,
        "jti": row.jti,
        "created_at": row.created_at,
        "last_seen_at": row.last_seen_at,
        "expires_at": row.expires_at,
        "revoked_at": row.revoked_at,
        "user_agent": row.user_agent,
        "device_label": row.device_label,
        "ip_address": row.ip_address,
    }
    if username is not None:
        data["username"] = username
    return data


class SessionStore:
    """Store for revocable login sessions."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def create_user_session(
        self,
        user_id: int,
        jti: str,
        expires_at: datetime,
        user_agent: str | None = None,
        device_label: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        """
        Record a new login session.

        A second call with the same jti is a no-op.

        Args:
            user_id: Owner of the session
            jti: Token identifier
            expires_at: Expiry (naive UTC)
            user_agent: Client user agent
            device_label: Human-readable device name
            ip_address: Client address
        """
        now = utcnow()
        stmt = (
            dialect_insert(self.db.dialect_name, UserSession)
            .values(
                user_id=user_id,
                jti=jti,
                expires_at=expires_at,
                user_agent=user_agent,
                device_label=device_label,
                ip_address=ip_address,
                last_seen_at=now,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["jti"])
        )
        with self.db.transaction() as session:
            session.execute(stmt)

        logger.debug("user_session_created", user_id=user_id)

    def touch_user_session(self, jti: str) -> bool:
        """
        Bump last_seen_at of an active session.

        Returns:
            bool: True if the session exists and is neither revoked nor expired
        """
        now = utcnow()
        with self.db.transaction() as session:
            updated = (
                session.query(UserSession)
                .filter(
                    UserSession.jti == jti,
                    UserSession.revoked_at.is_(None),
                    UserSession.expires_at > now,
                )
                .update({UserSession.last_seen_at: now}, synchronize_session=False)
            )
        return updated > 0

    def is_session_active(self, jti: str) -> bool:
        with self.db.session() as session:
            found = (
                session.query(UserSession.id)
                .filter(
                    UserSession.jti == jti,
                    UserSession.revoked_at.is_(None),
                    UserSession.expires_at > utcnow(),
                )
                .first()
            )
        return found is not None

    def _revoke(self, *criteria) -> int:
        with self.db.transaction() as session:
            return (
                session.query(UserSession)
                .filter(UserSession.revoked_at.is_(None), *criteria)
                .update({UserSession.revoked_at: utcnow()}, synchronize_session=False)
            )

    def revoke_session_by_jti(self, jti: str) -> bool:
        revoked = self._revoke(UserSession.jti == jti)
        if revoked:
            logger.info("user_session_revoked")
        return revoked > 0

    def revoke_session_by_jti_for_user(self, user_id: int, jti: str) -> bool:
        revoked = self._revoke(UserSession.user_id == user_id, UserSession.jti == jti)
        if revoked:
            logger.info("user_session_revoked", user_id=user_id)
        return revoked > 0

    def revoke_other_sessions_for_user(self, user_id: int, current_jti: str) -> int:
        """Revoke every session of a user except the one in use."""
        revoked = self._revoke(UserSession.user_id == user_id, UserSession.jti != current_jti)
        logger.info("user_other_sessions_revoked", user_id=user_id, count=revoked)
        return revoked

    def revoke_all_sessions_for_user(self, user_id: int) -> int:
        revoked = self._revoke(UserSession.user_id == user_id)
        logger.info("user_sessions_revoked", user_id=user_id, count=revoked)
        return revoked

    def list_user_sessions(self, user_id: int) -> list[dict[str, Any]]:
        """Sessions of a user, most recently seen first (never-seen last)."""
        with self.db.session() as session:
            rows = (
                session.query(UserSession)
                .filter(UserSession.user_id == user_id)
                .order_by(
                    UserSession.last_seen_at.is_(None),
                    UserSession.last_seen_at.desc(),
                    UserSession.expires_at.desc(),
                )
                .all()
            )
        return [_session_dict(row) for row in rows]

    def list_all_user_sessions(self, limit: int = 500) -> list[dict[str, Any]]:
        """Sessions of every user with the owner's username (admin view)."""
        with self.db.session() as session:
            rows = (
                session.query(UserSession, User.username)
                .join(User, User.id == UserSession.user_id)
                .order_by(
                    UserSession.last_seen_at.is_(None),
                    UserSession.last_seen_at.desc(),
                    UserSession.expires_at.desc(),
                )
                .limit(limit)
                .all()
            )
        return [_session_dict(row, username) for row, username in rows]

    def delete_user_session_by_jti(self, jti: str) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(UserSession).filter(UserSession.jti == jti).delete(synchronize_session=False)
        return deleted > 0

    def delete_user_session_by_jti_for_user(self, user_id: int, jti: str) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(UserSession)
                .filter(UserSession.user_id == user_id, UserSession.jti == jti)
                .delete(synchronize_session=False)
            )
        return deleted > 0

    def purge_expired_sessions(self) -> int:
        """
        Delete revoked and expired sessions.

        Returns:
            int: Number of sessions removed
        """
        with self.db.transaction() as session:
            deleted = (
                session.query(UserSession)
                .filter(or_(UserSession.revoked_at.isnot(None), UserSession.expires_at <= utcnow()))
                .delete(synchronize_session=False)
            )

        logger.info("expired_sessions_purged", count=deleted)
        return deleted
