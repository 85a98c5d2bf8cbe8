"""
Public share links for movie and show pages.

A share is addressed by an unguessable URL-safe token. It may expire at a
fixed time or after a number of views, and may require a password (stored as
a peppered Argon2id hash).
"""

from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func

from requestarr.core.security import PasswordSecurity, generate_token, get_password_security
from requestarr.database import DatabaseContext, utcnow
from requestarr.models import MediaShare, User
from requestarr.models.media import MediaType

logger = structlog.get_logger()

SHARE_TOKEN_BYTES = 24


def _share_dict(share: MediaShare, include_hash: bool = True) -> dict[str, Any]:
    data = {
        "id": share.id,
        "token": share.token,
        "media_type": share.media_type,
        "tmdb_id": share.tmdb_id,
        "created_by": share.created_by,
        "expires_at": share.expires_at,
        "view_count": share.view_count,
        "max_views": share.max_views,
        "password_set": share.password_set,
        "last_viewed_at": share.last_viewed_at,
        "last_viewed_ip": share.last_viewed_ip,
        "last_viewed_referrer": share.last_viewed_referrer,
        "last_viewed_country": share.last_viewed_country,
        "last_viewed_ua_hash": share.last_viewed_ua_hash,
        "created_at": share.created_at,
    }
    if include_hash:
        data["password_hash"] = share.password_hash
    return data


def is_share_viewable(share: dict[str, Any], now: datetime | None = None) -> bool:
    """
    Whether a share may still be opened.

    Args:
        share: Share as returned by the store
        now: Reference time (defaults to the current UTC time)

    Returns:
        bool: False once the share has expired or reached its view limit
    """
    now = now or utcnow()
    if share["expires_at"] is not None and share["expires_at"] <= now:
        return False
    if share["max_views"] is not None and share["view_count"] >= share["max_views"]:
        return False
    return True


class MediaShareStore:
    """Store for media share links."""

    def __init__(self, db: DatabaseContext, password_security: PasswordSecurity | None = None):
        self.db = db
        self._password_security = password_security

    @property
    def password_security(self) -> PasswordSecurity:
        if self._password_security is None:
            self._password_security = get_password_security()
        return self._password_security

    def create_share(
        self,
        media_type: MediaType,
        tmdb_id: int,
        created_by: int,
        expires_at: datetime | None = None,
        max_views: int | None = None,
        password: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a share link.

        Args:
            media_type: ``movie`` or ``tv``
            tmdb_id: Shared title
            created_by: Owner of the share
            expires_at: Optional expiry (naive UTC)
            max_views: Optional view limit
            password: Optional password required to open the share

        Returns:
            dict: The share, including its token
        """
        password_hash = self.password_security.hash_password(password) if password else None

        with self.db.transaction() as session:
            share = MediaShare(
                token=generate_token(SHARE_TOKEN_BYTES),
                media_type=media_type,
                tmdb_id=tmdb_id,
                created_by=created_by,
                expires_at=expires_at,
                max_views=max_views,
                password_hash=password_hash,
            )
            session.add(share)
            session.flush()
            result = _share_dict(share, include_hash=False)

        logger.info("media_share_created", share_id=result["id"], user_id=created_by, protected=password_hash is not None)
        return result

    def get_by_token(self, token: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            share = session.query(MediaShare).filter(MediaShare.token == token).first()
        return _share_dict(share) if share is not None else None

    def get_by_id(self, share_id: int) -> dict[str, Any] | None:
        with self.db.session() as session:
            share = session.get(MediaShare, share_id)
        return _share_dict(share) if share is not None else None

    def verify_share_password(self, share: dict[str, Any], password: str) -> bool:
        """Check a password against a protected share; unprotected shares always pass."""
        password_hash = share.get("password_hash")
        if not password_hash:
            return True
        if not password:
            return False
        return self.password_security.verify_password(password, password_hash)

    def is_share_viewable(self, share: dict[str, Any], now: datetime | None = None) -> bool:
        return is_share_viewable(share, now)

    def increment_view_count(
        self,
        share_id: int,
        ip: str | None = None,
        referrer: str | None = None,
        country: str | None = None,
        ua_hash: str | None = None,
    ) -> None:
        """Count a view and record who viewed last."""
        with self.db.transaction() as session:
            session.query(MediaShare).filter(MediaShare.id == share_id).update(
                {
                    MediaShare.view_count: MediaShare.view_count + 1,
                    MediaShare.last_viewed_at: utcnow(),
                    MediaShare.last_viewed_ip: ip,
                    MediaShare.last_viewed_referrer: referrer,
                    MediaShare.last_viewed_country: country,
                    MediaShare.last_viewed_ua_hash: ua_hash,
                },
                synchronize_session=False,
            )

    def list_recent_by_user(self, user_id: int, limit: int = 10) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                session.query(MediaShare)
                .filter(MediaShare.created_by == user_id)
                .order_by(MediaShare.created_at.desc())
                .limit(limit)
                .all()
            )
        return [_share_dict(row, include_hash=False) for row in rows]

    def count_recent_by_user(self, user_id: int, minutes: int = 60) -> int:
        """Shares a user created in the last ``minutes``; used for rate limiting."""
        since = utcnow() - timedelta(minutes=minutes)
        with self.db.session() as session:
            return (
                session.query(func.count(MediaShare.id))
                .filter(MediaShare.created_by == user_id, MediaShare.created_at > since)
                .scalar()
            )

    def delete_share(self, share_id: int, user_id: int) -> bool:
        """Delete a share owned by ``user_id``."""
        with self.db.transaction() as session:
            deleted = (
                session.query(MediaShare)
                .filter(MediaShare.id == share_id, MediaShare.created_by == user_id)
                .delete(synchronize_session=False)
            )
        return deleted > 0

    def list_all(self) -> list[dict[str, Any]]:
        """Every share with its creator's username (admin view)."""
        with self.db.session() as session:
            rows = (
                session.query(MediaShare, User.username)
                .join(User, User.id == MediaShare.created_by)
                .order_by(MediaShare.created_at.desc())
                .all()
            )
        return [{**_share_dict(share, include_hash=False), "created_by_username": username} for share, username in rows]

    def delete_share_by_admin(self, share_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(MediaShare).filter(MediaShare.id == share_id).delete(synchronize_session=False)
        if deleted:
            logger.info("media_share_deleted_by_admin", share_id=share_id)
        return deleted > 0
