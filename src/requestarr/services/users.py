"""
User store for Requestarr.

This module provides identity records and their links:
- Upsert on login with a throttled last-seen timestamp
- Group tags kept as a set relation
- Local password, Jellyfin and OIDC account links
- Per-user preferences and request limit overrides
"""

from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from requestarr.config import Settings
from requestarr.core.security import FieldEncryption, get_field_encryption
from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import User, UserGroup, UserNotificationEndpoint
from requestarr.models.user import ADMIN_GROUPS, normalize_groups

logger = structlog.get_logger()

_UNSET: Any = object()

# Columns update_user_profile may write directly
PROFILE_FIELDS = frozenset(
    {
        "username",
        "email",
        "discord_user_id",
        "discover_region",
        "original_language",
        "watchlist_sync_movies",
        "watchlist_sync_tv",
        "request_limit_movie",
        "request_limit_movie_days",
        "request_limit_series",
        "request_limit_series_days",
        "banned",
        "weekly_digest_opt_in",
    }
)


def _replace_groups(session: Session, user_id: int, groups) -> None:
    session.query(UserGroup).filter(UserGroup.user_id == user_id).delete(synchronize_session=False)
    session.add_all(UserGroup(user_id=user_id, name=name) for name in sorted(normalize_groups(groups)))


def _user_profile(user: User, endpoint_ids: list[int]) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "groups": user.groups,
        "discord_user_id": user.discord_user_id,
        "jellyfin_user_id": user.jellyfin_user_id,
        "jellyfin_username": user.jellyfin_username,
        "avatar_url": user.avatar_url,
        "avatar_version": user.avatar_version,
        "created_at": user.created_at,
        "last_seen_at": user.last_seen_at,
        "mfa_enabled": user.mfa_enabled,
        "discover_region": user.discover_region,
        "original_language": user.original_language,
        "watchlist_sync_movies": user.watchlist_sync_movies,
        "watchlist_sync_tv": user.watchlist_sync_tv,
        "request_limit_movie": user.request_limit_movie,
        "request_limit_movie_days": user.request_limit_movie_days,
        "request_limit_series": user.request_limit_series,
        "request_limit_series_days": user.request_limit_series_days,
        "banned": user.banned,
        "weekly_digest_opt_in": user.weekly_digest_opt_in,
        "notification_endpoint_ids": endpoint_ids,
    }


class UserStore:
    """
    Store for users, their groups and external account links.

    Lookups return User rows detached from their session; group tags are
    eagerly loaded, so ``user.groups`` stays readable.
    """

    def __init__(
        self,
        db: DatabaseContext,
        app_settings: Settings | None = None,
        encryption: FieldEncryption | None = None,
    ):
        """
        Initialize user store.

        Args:
            db: Database context
            app_settings: Settings supplying the last-seen throttle interval
            encryption: Cipher for the stored Jellyfin token (defaults to the
                process-wide cipher, created on first use)
        """
        if app_settings is None:
            from requestarr.config import settings as app_settings

        self.db = db
        self.last_seen_interval = timedelta(minutes=app_settings.user_last_seen_interval_minutes)
        self._encryption = encryption
        logger.info("user_store_initialized")

    @property
    def encryption(self) -> FieldEncryption:
        if self._encryption is None:
            self._encryption = get_field_encryption()
        return self._encryption

    # ------------------------------------------------------------------
    # Login upserts
    # ------------------------------------------------------------------

    def upsert_user(self, username: str, groups) -> int:
        """
        Create or refresh a user on login.

        ``last_seen_at`` is bumped only when it is NULL or older than the
        configured interval; the group set is replaced in the same transaction.

        Args:
            username: Unique username
            groups: Group tags (stripped, empties dropped, duplicates collapsed)

        Returns:
            int: The user id
        """
        now = utcnow()
        stale_before = now - self.last_seen_interval

        stmt = dialect_insert(self.db.dialect_name, User).values(username=username, last_seen_at=now, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["username"],
            set_={
                "last_seen_at": case(
                    (or_(User.last_seen_at.is_(None), User.last_seen_at < stale_before), now),
                    else_=User.last_seen_at,
                )
            },
        ).returning(User.id)

        with self.db.transaction() as session:
            user_id = session.execute(stmt).scalar_one()
            _replace_groups(session, user_id, groups)

        logger.debug("user_upserted", user_id=user_id, username=username)
        return user_id

    def set_user_password(self, username: str, groups, password_hash: str, email: str | None = None) -> User:
        """
        Create or update a local account with a password.

        An existing email is kept when ``email`` is None.
        """
        now = utcnow()
        stmt = dialect_insert(self.db.dialect_name, User).values(
            username=username,
            password_hash=password_hash,
            email=email,
            last_seen_at=now,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["username"],
            set_={
                "password_hash": stmt.excluded.password_hash,
                "email": func.coalesce(stmt.excluded.email, User.email),
                "last_seen_at": now,
            },
        ).returning(User.id)

        with self.db.transaction() as session:
            user_id = session.execute(stmt).scalar_one()
            _replace_groups(session, user_id, groups)

        logger.info("user_password_set", user_id=user_id, username=username)
        return self._get_user(User.id == user_id)

    def update_user_password_by_id(self, user_id: int, password_hash: str) -> bool:
        with self.db.transaction() as session:
            updated = (
                session.query(User)
                .filter(User.id == user_id)
                .update({User.password_hash: password_hash, User.last_seen_at: utcnow()}, synchronize_session=False)
            )
        if updated:
            logger.info("user_password_updated", user_id=user_id)
        return updated > 0

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_user(self, *criteria) -> User | None:
        with self.db.session() as session:
            return session.query(User).filter(*criteria).first()

    def get_user_with_hash(self, username: str) -> User | None:
        """User row including password hash and MFA secret, by exact username."""
        return self._get_user(User.username == username)

    def get_user_by_username(self, username: str) -> User | None:
        return self._get_user(User.username == username)

    def get_user_by_email(self, email: str) -> User | None:
        return self._get_user(func.lower(User.email) == email.lower())

    def get_user_by_email_or_username(self, email: str | None, username: str | None) -> User | None:
        """Case-insensitive match on email or username; empty inputs are ignored."""
        criteria = []
        if email:
            criteria.append(func.lower(User.email) == email.lower())
        if username:
            criteria.append(func.lower(User.username) == username.lower())
        if not criteria:
            return None
        return self._get_user(or_(*criteria))

    def get_user_by_oidc_sub(self, oidc_sub: str) -> User | None:
        return self._get_user(User.oidc_sub == oidc_sub)

    def get_user_by_jellyfin_user_id(self, jellyfin_user_id: str) -> User | None:
        return self._get_user(User.jellyfin_user_id == jellyfin_user_id)

    def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        """
        Public profile of a user.

        Returns:
            dict | None: Profile fields with ``mfa_enabled`` and the granted
            ``notification_endpoint_ids``; None if the user does not exist
        """
        with self.db.session() as session:
            user = session.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            endpoint_ids = [
                row.endpoint_id
                for row in session.query(UserNotificationEndpoint.endpoint_id)
                .filter(UserNotificationEndpoint.user_id == user_id)
                .order_by(UserNotificationEndpoint.endpoint_id)
            ]
            return _user_profile(user, endpoint_ids)

    def list_users(self) -> list[dict[str, Any]]:
        """All users, newest first, as profiles."""
        with self.db.session() as session:
            users = session.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
            grants: dict[int, list[int]] = {}
            for row in session.query(UserNotificationEndpoint).order_by(UserNotificationEndpoint.endpoint_id):
                grants.setdefault(row.user_id, []).append(row.endpoint_id)

        return [_user_profile(user, grants.get(user.id, [])) for user in users]

    def search_users_by_jellyfin_username(self, username: str) -> list[dict[str, Any]]:
        needle = username.lower()
        with self.db.session() as session:
            rows = (
                session.query(User.id, User.username, User.jellyfin_username)
                .filter(or_(func.lower(User.jellyfin_username) == needle, func.lower(User.username) == needle))
                .all()
            )
        return [row._asdict() for row in rows]

    def delete_user(self, user_id: int) -> bool:
        """Delete a user; sessions, requests and other owned rows cascade."""
        with self.db.transaction() as session:
            deleted = session.query(User).filter(User.id == user_id).delete(synchronize_session=False)

        if deleted:
            logger.info("user_deleted", user_id=user_id)
        return deleted > 0

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_user_profile(self, user_id: int, groups=None, **fields: Any) -> dict[str, Any] | None:
        """
        Partially update a user's profile.

        Args:
            user_id: User to update
            groups: Replacement group set, if given
            **fields: Columns from PROFILE_FIELDS to write (None is written as NULL)

        Returns:
            dict | None: The updated profile, or None when nothing was given
            or the user does not exist

        Raises:
            ValueError: If a field is not an updatable profile column
        """
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        if "username" in fields and not fields["username"]:
            del fields["username"]
        if not fields and groups is None:
            return None

        values = {getattr(User, name): value for name, value in fields.items()}
        values[User.last_seen_at] = utcnow()

        with self.db.transaction() as session:
            updated = session.query(User).filter(User.id == user_id).update(values, synchronize_session=False)
            if updated and groups is not None:
                _replace_groups(session, user_id, groups)

        if not updated:
            return None

        logger.info("user_profile_updated", user_id=user_id, fields=sorted(fields))
        return self.get_user_by_id(user_id)

    def get_user_request_limit_overrides(self, user_id: int) -> dict[str, int | None]:
        """Per-user request limit overrides (None means use the global default)."""
        with self.db.session() as session:
            row = (
                session.query(
                    User.request_limit_movie,
                    User.request_limit_movie_days,
                    User.request_limit_series,
                    User.request_limit_series_days,
                )
                .filter(User.id == user_id)
                .first()
            )

        if row is None:
            return {"movie_limit": None, "movie_days": None, "series_limit": None, "series_days": None}
        return {
            "movie_limit": row.request_limit_movie,
            "movie_days": row.request_limit_movie_days,
            "series_limit": row.request_limit_series,
            "series_days": row.request_limit_series_days,
        }

    # ------------------------------------------------------------------
    # Jellyfin links
    # ------------------------------------------------------------------

    def link_user_to_jellyfin(
        self,
        user_id: int,
        jellyfin_user_id: str,
        jellyfin_username: str,
        jellyfin_device_id: str,
        jellyfin_auth_token: str | None = None,
        avatar_url: str | None = None,
    ) -> bool:
        """Link a Jellyfin account; the access token is stored encrypted."""
        values = {
            User.jellyfin_user_id: jellyfin_user_id,
            User.jellyfin_username: jellyfin_username,
            User.jellyfin_device_id: jellyfin_device_id,
            User.jellyfin_auth_token: self.encryption.encrypt_if_needed(jellyfin_auth_token or None),
            User.avatar_url: avatar_url,
            User.avatar_version: User.avatar_version + 1,
            User.last_seen_at: utcnow(),
        }
        with self.db.transaction() as session:
            updated = session.query(User).filter(User.id == user_id).update(values, synchronize_session=False)

        logger.info("user_linked_to_jellyfin", user_id=user_id, jellyfin_user_id=jellyfin_user_id)
        return updated > 0

    def unlink_user_from_jellyfin(self, user_id: int) -> bool:
        values = {
            User.jellyfin_user_id: None,
            User.jellyfin_username: None,
            User.jellyfin_device_id: None,
            User.jellyfin_auth_token: None,
            User.avatar_url: None,
            User.avatar_version: User.avatar_version + 1,
            User.last_seen_at: utcnow(),
        }
        with self.db.transaction() as session:
            updated = session.query(User).filter(User.id == user_id).update(values, synchronize_session=False)

        logger.info("user_unlinked_from_jellyfin", user_id=user_id)
        return updated > 0

    def get_jellyfin_auth_token(self, user_id: int) -> str | None:
        with self.db.session() as session:
            token = session.query(User.jellyfin_auth_token).filter(User.id == user_id).scalar()
        return self.encryption.decrypt_if_needed(token)

    def create_jellyfin_user(
        self,
        username: str,
        groups,
        jellyfin_user_id: str,
        jellyfin_username: str,
        jellyfin_device_id: str,
        email: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        with self.db.transaction() as session:
            user = User(
                username=username,
                email=email,
                jellyfin_user_id=jellyfin_user_id,
                jellyfin_username=jellyfin_username,
                jellyfin_device_id=jellyfin_device_id,
                avatar_url=avatar_url,
            )
            session.add(user)
            session.flush()
            _replace_groups(session, user.id, groups)
            user_id = user.id

        logger.info("jellyfin_user_created", user_id=user_id, username=username)
        return self._get_user(User.id == user_id)

    # ------------------------------------------------------------------
    # OIDC links
    # ------------------------------------------------------------------

    def create_oidc_user(self, username: str, groups, oidc_sub: str, email: str | None = None) -> User:
        with self.db.transaction() as session:
            user = User(username=username, email=email, oidc_sub=oidc_sub)
            session.add(user)
            session.flush()
            _replace_groups(session, user.id, groups)
            user_id = user.id

        logger.info("oidc_user_created", user_id=user_id, username=username)
        return self._get_user(User.id == user_id)

    def update_user_oidc_link(self, user_id: int, oidc_sub: str, email: str | None = _UNSET, groups=None) -> bool:
        values = {User.oidc_sub: oidc_sub, User.last_seen_at: utcnow()}
        if email is not _UNSET:
            values[User.email] = email

        with self.db.transaction() as session:
            updated = session.query(User).filter(User.id == user_id).update(values, synchronize_session=False)
            if updated and groups is not None:
                _replace_groups(session, user_id, groups)

        return updated > 0

    def unlink_user_oidc(self, user_id: int) -> bool:
        with self.db.transaction() as session:
            updated = (
                session.query(User)
                .filter(User.id == user_id)
                .update({User.oidc_sub: None}, synchronize_session=False)
            )
        return updated > 0

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get_web_push_preference(self, user_id: int) -> bool | None:
        """Stored Web Push preference; None when unset or the user does not exist."""
        with self.db.session() as session:
            return session.query(User.web_push_enabled).filter(User.id == user_id).scalar()

    def set_web_push_preference(self, user_id: int, enabled: bool) -> None:
        with self.db.transaction() as session:
            session.query(User).filter(User.id == user_id).update(
                {User.web_push_enabled: enabled}, synchronize_session=False
            )

    def get_weekly_digest_preference(self, user_id: int) -> bool | None:
        with self.db.session() as session:
            return session.query(User.weekly_digest_opt_in).filter(User.id == user_id).scalar()

    def set_weekly_digest_preference(self, user_id: int, enabled: bool) -> None:
        with self.db.transaction() as session:
            session.query(User).filter(User.id == user_id).update(
                {User.weekly_digest_opt_in: enabled}, synchronize_session=False
            )

    def list_weekly_digest_recipients(self) -> list[dict[str, Any]]:
        """Users opted in to the digest who have an email and are not banned."""
        with self.db.session() as session:
            rows = (
                session.query(User.id, User.email, User.username)
                .filter(
                    User.weekly_digest_opt_in.is_(True),
                    User.email.isnot(None),
                    User.banned.is_(False),
                )
                .order_by(User.id)
                .all()
            )
        return [row._asdict() for row in rows]

    def list_users_with_watchlist_sync(self) -> list[dict[str, Any]]:
        """Jellyfin-linked users with movie or TV watchlist sync enabled."""
        with self.db.session() as session:
            users = (
                session.query(User)
                .filter(
                    User.jellyfin_user_id.isnot(None),
                    or_(User.watchlist_sync_movies.is_(True), User.watchlist_sync_tv.is_(True)),
                )
                .order_by(User.id)
                .all()
            )

        return [
            {
                "id": user.id,
                "username": user.username,
                "jellyfin_user_id": user.jellyfin_user_id,
                "sync_movies": user.watchlist_sync_movies,
                "sync_tv": user.watchlist_sync_tv,
                "is_admin": bool(user.groups & ADMIN_GROUPS),
            }
            for user in users
        ]
