"""
Notification database models.

Defines delivery endpoints (Telegram, Discord, email, webhook), the join
granting users access to personal endpoints, in-app user notifications and
Web Push subscriptions.
"""

from typing import Literal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from requestarr.database import Base, utcnow

NotificationEndpointType = Literal["telegram", "discord", "email", "webhook"]

NOTIFICATION_ENDPOINT_TYPES: tuple[str, ...] = ("telegram", "discord", "email", "webhook")

DEFAULT_NOTIFICATION_EVENTS: tuple[str, ...] = (
    "request_pending",
    "request_submitted",
    "request_denied",
    "request_failed",
    "request_already_exists",
    "request_available",
    "request_removed",
    "issue_reported",
    "issue_resolved",
)


def _default_events() -> list[str]:
    return list(DEFAULT_NOTIFICATION_EVENTS)


class NotificationEndpoint(Base):
    """
    Named notification delivery channel.

    Global endpoints receive every subscribed event; personal endpoints only
    deliver for users granted through UserNotificationEndpoint.
    """

    __tablename__ = "notification_endpoint"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(
        Enum(*NOTIFICATION_ENDPOINT_TYPES, name="notification_endpoint_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
        index=True,
    )
    enabled = Column(Boolean, default=True, nullable=False, index=True)
    is_global = Column(Boolean, default=False, nullable=False, index=True)
    events = Column(
        JSON,
        default=_default_events,
        nullable=False,
        comment="Event names this endpoint is subscribed to",
    )
    config = Column(
        JSON,
        default=dict,
        nullable=False,
        comment="Provider-specific configuration, decoded per endpoint type",
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<NotificationEndpoint(id={self.id}, type='{self.type}', name='{self.name}')>"


class UserNotificationEndpoint(Base):
    __tablename__ = "user_notification_endpoint"

    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    endpoint_id = Column(
        Integer,
        ForeignKey("notification_endpoint.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)


class UserNotification(Base):
    """In-app notification shown in a user's inbox."""

    __tablename__ = "user_notification"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(64), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    link = Column(Text, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_user_notification_user_unread", "user_id", "is_read", "created_at"),)


class PushSubscription(Base):
    """Web Push subscription registered by a browser."""

    __tablename__ = "push_subscription"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    endpoint = Column(Text, nullable=False)
    p256dh = Column(Text, nullable=False)
    auth = Column(Text, nullable=False)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_used_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "endpoint", name="uq_push_subscription_user_endpoint"),)
