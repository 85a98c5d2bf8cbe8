"""
Notification stores for Requestarr.

This module provides:
- NotificationEndpointStore: delivery endpoints with typed configs and the
  per-user grants for personal endpoints
- UserNotificationStore: the in-app notification inbox
"""

from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import func

from requestarr.database import DatabaseContext
from requestarr.models import NotificationEndpoint, UserNotification, UserNotificationEndpoint
from requestarr.models.notification import DEFAULT_NOTIFICATION_EVENTS, NotificationEndpointType
from requestarr.schemas.notification import (
    CONFIG_MODELS,
    decode_endpoint_config,
    default_endpoint_config,
    encode_endpoint_config,
)

logger = structlog.get_logger()

DEFAULT_INBOX_LIMIT = 50


def validate_endpoint_config(endpoint_type: str, config: BaseModel | dict | None) -> BaseModel:
    """
    Validate a config supplied for writing.

    Unlike decoding stored values, invalid input is rejected rather than
    replaced by the default.

    Raises:
        ValueError: If the endpoint type is unknown or a typed config of a
            different type is given
        pydantic.ValidationError: If a dict config does not match the type
    """
    if config is None:
        return default_endpoint_config(endpoint_type)
    model = CONFIG_MODELS.get(endpoint_type)
    if model is None:
        raise ValueError(f"Unknown notification endpoint type: {endpoint_type}")
    if isinstance(config, BaseModel):
        if not isinstance(config, model):
            raise ValueError(f"Config of type {type(config).__name__} does not match endpoint type {endpoint_type}")
        return config
    return model.model_validate({**config, "type": endpoint_type})


def _endpoint_public(row: NotificationEndpoint) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "type": row.type,
        "enabled": row.enabled,
        "is_global": row.is_global,
        "events": [str(event) for event in (row.events or [])],
        "created_at": row.created_at,
    }


def _endpoint_full(row: NotificationEndpoint) -> dict[str, Any]:
    return {**_endpoint_public(row), "config": decode_endpoint_config(row.type, row.config)}


class NotificationEndpointStore:
    """
    Store for notification endpoints.

    "Public" results omit the config (which may contain credentials); "full"
    results carry it decoded into its typed model.
    """

    def __init__(self, db: DatabaseContext):
        self.db = db

    def _list(self, *criteria, join_user_id: int | None = None) -> list[NotificationEndpoint]:
        with self.db.session() as session:
            query = session.query(NotificationEndpoint)
            if join_user_id is not None:
                query = query.join(
                    UserNotificationEndpoint,
                    UserNotificationEndpoint.endpoint_id == NotificationEndpoint.id,
                ).filter(UserNotificationEndpoint.user_id == join_user_id)
            return (
                query.filter(*criteria)
                .order_by(NotificationEndpoint.created_at.desc(), NotificationEndpoint.id.desc())
                .all()
            )

    def list_endpoints(self) -> list[dict[str, Any]]:
        return [_endpoint_public(row) for row in self._list()]

    def list_endpoints_full(self) -> list[dict[str, Any]]:
        return [_endpoint_full(row) for row in self._list()]

    def list_global_full(self) -> list[dict[str, Any]]:
        """Enabled endpoints that receive events for every user."""
        return [
            _endpoint_full(row)
            for row in self._list(NotificationEndpoint.enabled.is_(True), NotificationEndpoint.is_global.is_(True))
        ]

    def list_for_user(self, user_id: int) -> list[dict[str, Any]]:
        """Enabled endpoints granted to a user."""
        return [
            _endpoint_full(row) for row in self._list(NotificationEndpoint.enabled.is_(True), join_user_id=user_id)
        ]

    def create(
        self,
        name: str,
        endpoint_type: NotificationEndpointType,
        config: BaseModel | dict | None = None,
        enabled: bool = True,
        is_global: bool = False,
        events: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create an endpoint.

        Args:
            name: Display name
            endpoint_type: telegram, discord, email or webhook
            config: Typed config or a dict matching the type
            enabled: Whether the endpoint delivers
            is_global: Deliver for every user instead of granted users only
            events: Subscribed events (defaults to every known event)

        Returns:
            dict: The endpoint without its config
        """
        validated = validate_endpoint_config(endpoint_type, config)

        with self.db.transaction() as session:
            row = NotificationEndpoint(
                name=name,
                type=endpoint_type,
                enabled=enabled,
                is_global=is_global,
                events=list(DEFAULT_NOTIFICATION_EVENTS) if events is None else list(events),
                config=encode_endpoint_config(validated),
            )
            session.add(row)
            session.flush()
            result = _endpoint_public(row)

        logger.info("notification_endpoint_created", endpoint_id=result["id"], endpoint_type=endpoint_type)
        return result

    def get_full(self, endpoint_id: int) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = session.get(NotificationEndpoint, endpoint_id)
        return _endpoint_full(row) if row is not None else None

    def update(
        self,
        endpoint_id: int,
        name: str,
        enabled: bool,
        is_global: bool,
        events: list[str],
        config: BaseModel | dict | None,
    ) -> dict[str, Any] | None:
        """Replace an endpoint's settings; its type cannot change."""
        with self.db.transaction() as session:
            row = session.get(NotificationEndpoint, endpoint_id)
            if row is None:
                return None
            validated = validate_endpoint_config(row.type, config)
            row.name = name
            row.enabled = enabled
            row.is_global = is_global
            row.events = list(events or [])
            row.config = encode_endpoint_config(validated)
            session.flush()
            result = _endpoint_public(row)

        logger.info("notification_endpoint_updated", endpoint_id=endpoint_id)
        return result

    def delete(self, endpoint_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(NotificationEndpoint)
                .filter(NotificationEndpoint.id == endpoint_id)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info("notification_endpoint_deleted", endpoint_id=endpoint_id)
        return deleted > 0

    def list_user_endpoint_ids(self, user_id: int) -> list[int]:
        with self.db.session() as session:
            return [
                row.endpoint_id
                for row in session.query(UserNotificationEndpoint.endpoint_id)
                .filter(UserNotificationEndpoint.user_id == user_id)
                .order_by(UserNotificationEndpoint.endpoint_id)
            ]

    def set_user_endpoint_ids(self, user_id: int, endpoint_ids: list[int]) -> None:
        """Replace a user's grants with the given endpoints (duplicates collapse)."""
        unique_ids = sorted(set(endpoint_ids))
        with self.db.transaction() as session:
            session.query(UserNotificationEndpoint).filter(UserNotificationEndpoint.user_id == user_id).delete(
                synchronize_session=False
            )
            session.add_all(UserNotificationEndpoint(user_id=user_id, endpoint_id=eid) for eid in unique_ids)

        logger.info("user_notification_endpoints_set", user_id=user_id, count=len(unique_ids))


def _notification_dict(row: UserNotification) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "type": row.type,
        "title": row.title,
        "message": row.message,
        "link": row.link,
        "is_read": row.is_read,
        "metadata": row.meta,
        "created_at": row.created_at,
    }


class UserNotificationStore:
    """Store for in-app notifications."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def create(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        link: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        with self.db.transaction() as session:
            row = UserNotification(
                user_id=user_id,
                type=notification_type,
                title=title,
                message=message,
                link=link,
                meta=metadata,
            )
            session.add(row)
            session.flush()
            return _notification_dict(row)

    def _list(self, *criteria, limit: int) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                session.query(UserNotification)
                .filter(*criteria)
                .order_by(UserNotification.created_at.desc(), UserNotification.id.desc())
                .limit(limit)
                .all()
            )
        return [_notification_dict(row) for row in rows]

    def list_for_user(self, user_id: int, limit: int = DEFAULT_INBOX_LIMIT) -> list[dict[str, Any]]:
        return self._list(UserNotification.user_id == user_id, limit=limit)

    def list_unread(self, user_id: int) -> list[dict[str, Any]]:
        return self._list(
            UserNotification.user_id == user_id,
            UserNotification.is_read.is_(False),
            limit=DEFAULT_INBOX_LIMIT,
        )

    def count_unread(self, user_id: int) -> int:
        with self.db.session() as session:
            return (
                session.query(func.count(UserNotification.id))
                .filter(UserNotification.user_id == user_id, UserNotification.is_read.is_(False))
                .scalar()
            )

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        with self.db.transaction() as session:
            updated = (
                session.query(UserNotification)
                .filter(UserNotification.id == notification_id, UserNotification.user_id == user_id)
                .update({UserNotification.is_read: True}, synchronize_session=False)
            )
        return updated > 0

    def mark_all_read(self, user_id: int) -> int:
        with self.db.transaction() as session:
            return (
                session.query(UserNotification)
                .filter(UserNotification.user_id == user_id, UserNotification.is_read.is_(False))
                .update({UserNotification.is_read: True}, synchronize_session=False)
            )

    def delete(self, notification_id: int, user_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(UserNotification)
                .filter(UserNotification.id == notification_id, UserNotification.user_id == user_id)
                .delete(synchronize_session=False)
            )
        return deleted > 0
