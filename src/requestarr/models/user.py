"""
User, group, session and credential database models.

This module defines the identity records: the User with its group tags, the
revocable login sessions keyed by jti, and the WebAuthn/MFA material used by
the authentication layer.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from requestarr.database import Base, utcnow

ADMIN_GROUPS = frozenset({"admin", "owner"})


def _uuid() -> str:
    return str(uuid.uuid4())


def normalize_groups(groups) -> frozenset[str]:
    """Strip, drop empties and collapse duplicates in a group tag collection."""
    return frozenset(g.strip() for g in (groups or ()) if g and g.strip())


class User(Base):
    """
    User model for identity and authorization.

    A user is created on the first successful authentication from any source
    (local password, OIDC, Jellyfin link) or by an administrator.
    """

    __tablename__ = "app_user"

    # Primary key
    id = Column(Integer, primary_key=True)

    # Identity
    username = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique username",
    )
    email = Column(
        String(320),
        unique=True,
        nullable=True,
        comment="Optional unique email address",
    )
    password_hash = Column(
        Text,
        nullable=True,
        comment="Argon2id password hash (NULL for external-only accounts)",
    )

    # External identity links
    oidc_sub = Column(
        String(255),
        unique=True,
        nullable=True,
        comment="OIDC subject claim of the linked identity",
    )
    jellyfin_user_id = Column(String(64), nullable=True, index=True)
    jellyfin_username = Column(String(255), nullable=True)
    jellyfin_device_id = Column(String(255), nullable=True)
    jellyfin_auth_token = Column(
        Text,
        nullable=True,
        comment="Fernet-encrypted Jellyfin access token",
    )
    discord_user_id = Column(String(64), nullable=True)

    # Profile
    avatar_url = Column(Text, nullable=True)
    avatar_version = Column(
        Integer,
        default=0,
        nullable=False,
        comment="Monotonic counter bumped whenever the avatar source changes",
    )
    discover_region = Column(String(8), nullable=True)
    original_language = Column(String(8), nullable=True)

    # Multi-factor authentication
    mfa_secret = Column(
        Text,
        nullable=True,
        comment="Fernet-encrypted TOTP secret (NULL if MFA is not enrolled)",
    )

    # Preferences
    watchlist_sync_movies = Column(Boolean, default=False, nullable=False)
    watchlist_sync_tv = Column(Boolean, default=False, nullable=False)
    weekly_digest_opt_in = Column(Boolean, default=False, nullable=False)
    web_push_enabled = Column(Boolean, nullable=True)

    # Request limit overrides (NULL = use the global default)
    request_limit_movie = Column(Integer, nullable=True)
    request_limit_movie_days = Column(Integer, nullable=True)
    request_limit_series = Column(Integer, nullable=True)
    request_limit_series_days = Column(Integer, nullable=True)

    # Account status
    banned = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    last_seen_at = Column(
        DateTime,
        default=utcnow,
        nullable=True,
        index=True,
        comment="Throttled activity timestamp",
    )

    # Relationships
    group_rows = relationship(
        "UserGroup",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    sessions = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, username='{self.username}', banned={self.banned})>"

    @property
    def groups(self) -> frozenset[str]:
        """Group tags as an unordered set."""
        return frozenset(row.name for row in self.group_rows)

    @property
    def is_admin(self) -> bool:
        return bool(self.groups & ADMIN_GROUPS)

    @property
    def mfa_enabled(self) -> bool:
        return bool(self.mfa_secret)


class UserGroup(Base):
    """One group tag held by a user."""

    __tablename__ = "app_user_group"

    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        primary_key=True,
    )
    name = Column(String(64), primary_key=True)

    def __repr__(self) -> str:
        return f"<UserGroup(user_id={self.user_id}, name='{self.name}')>"


class UserSession(Base):
    """
    Revocable login session keyed by its token identifier (jti).

    A session is active iff it has not been revoked and has not expired.
    """

    __tablename__ = "user_session"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    jti = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Token identifier presented by the client",
    )
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked_at = Column(
        DateTime,
        nullable=True,
        comment="Revocation timestamp (NULL if still valid)",
    )

    # Device metadata
    user_agent = Column(Text, nullable=True)
    device_label = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)

    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    def __repr__(self) -> str:
        return f"<UserSession(id='{self.id}', user_id={self.user_id}, revoked={self.revoked_at is not None})>"

    def is_active(self, now: datetime | None = None) -> bool:
        """
        Check if the session can still be used.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            bool: True if not revoked and not expired
        """
        now = now or utcnow()
        return self.revoked_at is None and self.expires_at > now


class UserCredential(Base):
    """WebAuthn credential registered by a user."""

    __tablename__ = "user_credential"

    id = Column(String(512), primary_key=True, comment="Credential id as issued by the authenticator")
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=True)
    public_key = Column(LargeBinary, nullable=False)
    counter = Column(
        BigInteger,
        default=0,
        nullable=False,
        comment="Signature counter; only ever moves forward",
    )
    device_type = Column(String(32), nullable=False)
    backed_up = Column(Boolean, default=False, nullable=False)
    transports = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<UserCredential(id='{self.id}', user_id={self.user_id}, counter={self.counter})>"


class WebAuthnChallenge(Base):
    __tablename__ = "webauthn_challenge"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=True)
    challenge = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class MfaSession(Base):
    """Short-lived MFA verification or enrolment session."""

    __tablename__ = "mfa_session"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(
        Enum("verify", "setup", name="mfa_session_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    secret = Column(Text, nullable=True, comment="Fernet-encrypted pending TOTP secret")
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
