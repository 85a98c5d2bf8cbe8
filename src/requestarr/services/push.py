"""Web Push subscriptions registered by users' browsers."""

from typing import Any

import structlog

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import PushSubscription

logger = structlog.get_logger()


class PushSubscriptionStore:
    def __init__(self, db: DatabaseContext):
        self.db = db

    def save_subscription(
        self,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
    ) -> int:
        """
        Register a browser endpoint, or refresh its keys if already known.

        Returns:
            int: The subscription id
        """
        now = utcnow()
        stmt = dialect_insert(self.db.dialect_name, PushSubscription).values(
            user_id=user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent,
            created_at=now,
            last_used_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "endpoint"],
            set_={"p256dh": stmt.excluded.p256dh, "auth": stmt.excluded.auth, "last_used_at": now},
        ).returning(PushSubscription.id)

        with self.db.transaction() as session:
            subscription_id = session.execute(stmt).scalar_one()

        logger.debug("push_subscription_saved", user_id=user_id, subscription_id=subscription_id)
        return subscription_id

    def delete_subscription(self, user_id: int, endpoint: str) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(PushSubscription)
                .filter(PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint)
                .delete(synchronize_session=False)
            )
        return deleted > 0

    def list_for_user(self, user_id: int) -> list[dict[str, Any]]:
        """Subscriptions, most recently used first (never used last)."""
        with self.db.session() as session:
            rows = (
                session.query(PushSubscription)
                .filter(PushSubscription.user_id == user_id)
                .order_by(
                    PushSubscription.last_used_at.is_(None),
                    PushSubscription.last_used_at.desc(),
                    PushSubscription.created_at.desc(),
                )
                .all()
            )
        return [
            {
                "id": row.id,
                "endpoint": row.endpoint,
                "keys": {"p256dh": row.p256dh, "auth": row.auth},
                "user_agent": row.user_agent,
                "created_at": row.created_at,
                "last_used_at": row.last_used_at,
            }
            for row in rows
        ]

    def touch(self, subscription_id: int) -> None:
        with self.db.transaction() as session:
            session.query(PushSubscription).filter(PushSubscription.id == subscription_id).update(
                {PushSubscription.last_used_at: utcnow()}, synchronize_session=False
            )
