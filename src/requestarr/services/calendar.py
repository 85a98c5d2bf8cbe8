"""
Calendar store for Requestarr.

This module provides:
- Per-user calendar preferences with partial updates
- The secret token behind each user's iCal feed URL
- Release subscriptions that drive the calendar-notifications job
"""

import uuid
from datetime import date
from typing import Any

import structlog
from sqlalchemy.orm import Session

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import CalendarEventSubscription, CalendarFeedToken, CalendarPreferences, User
from requestarr.models.calendar import DEFAULT_CALENDAR_FILTERS, CalendarEventType, CalendarView

logger = structlog.get_logger()


def _new_feed_token() -> str:
    return str(uuid.uuid4())


def _subscription_dict(row: CalendarEventSubscription) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "event_type": row.event_type,
        "tmdb_id": row.tmdb_id,
        "season_number": row.season_number,
        "episode_number": row.episode_number,
        "title": row.title,
        "air_date": row.air_date,
        "notify_on_available": row.notify_on_available,
        "created_at": row.created_at,
    }


def _match_nullable(column, value):
    return column.is_(None) if value is None else column == value


class CalendarStore:
    """Store for calendar preferences, feed tokens and release subscriptions."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get_preferences(self, user_id: int) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = session.get(CalendarPreferences, user_id)
        if row is None:
            return None
        return {
            "user_id": row.user_id,
            "default_view": row.default_view,
            "filters": row.filters,
            "genre_filters": row.genre_filters or [],
            "monitored_only": row.monitored_only,
            "updated_at": row.updated_at,
        }

    def set_preferences(
        self,
        user_id: int,
        default_view: CalendarView | None = None,
        filters: dict[str, bool] | None = None,
        genre_filters: list[int] | None = None,
        monitored_only: bool | None = None,
    ) -> None:
        """
        Create or partially update a user's preferences.

        Arguments left as None keep their stored value (or the default on
        first save).
        """
        now = utcnow()
        given = {
            "default_view": default_view,
            "filters": filters,
            "genre_filters": genre_filters,
            "monitored_only": monitored_only,
        }
        given = {key: value for key, value in given.items() if value is not None}

        stmt = dialect_insert(self.db.dialect_name, CalendarPreferences).values(
            user_id=user_id,
            default_view=given.get("default_view", "month"),
            filters=given.get("filters", dict(DEFAULT_CALENDAR_FILTERS)),
            genre_filters=given.get("genre_filters"),
            monitored_only=given.get("monitored_only", False),
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={**{key: getattr(stmt.excluded, key) for key in given}, "updated_at": now},
        )
        with self.db.transaction() as session:
            session.execute(stmt)

    # ------------------------------------------------------------------
    # Feed token
    # ------------------------------------------------------------------

    def get_feed_token(self, user_id: int) -> str:
        """The user's feed token, created on first use."""
        with self.db.transaction() as session:
            token = session.query(CalendarFeedToken.token).filter(CalendarFeedToken.user_id == user_id).scalar()
            if token:
                return token

            session.execute(
                dialect_insert(self.db.dialect_name, CalendarFeedToken)
                .values(user_id=user_id, token=_new_feed_token(), created_at=utcnow())
                .on_conflict_do_nothing(index_elements=["user_id"])
            )
            return session.query(CalendarFeedToken.token).filter(CalendarFeedToken.user_id == user_id).scalar()

    def rotate_feed_token(self, user_id: int) -> str:
        """Replace the feed token, invalidating previously shared feed URLs."""
        now = utcnow()
        token = _new_feed_token()
        stmt = dialect_insert(self.db.dialect_name, CalendarFeedToken).values(
            user_id=user_id, token=token, created_at=now, rotated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"token": stmt.excluded.token, "rotated_at": now},
        )
        with self.db.transaction() as session:
            session.execute(stmt)

        logger.info("calendar_feed_token_rotated", user_id=user_id)
        return token

    def get_feed_user_by_token(self, token: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = (
                session.query(User.id, User.username)
                .join(CalendarFeedToken, CalendarFeedToken.user_id == User.id)
                .filter(CalendarFeedToken.token == token)
                .first()
            )
        return row._asdict() if row is not None else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def list_subscriptions(self, user_id: int) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                session.query(CalendarEventSubscription)
                .filter(CalendarEventSubscription.user_id == user_id)
                .order_by(CalendarEventSubscription.created_at.desc(), CalendarEventSubscription.id.desc())
                .all()
            )
        return [_subscription_dict(row) for row in rows]

    def _find_subscription(
        self,
        session: Session,
        user_id: int,
        event_type: str,
        tmdb_id: int,
        season_number: int | None,
        episode_number: int | None,
    ) -> CalendarEventSubscription | None:
        return (
            session.query(CalendarEventSubscription)
            .filter(
                CalendarEventSubscription.user_id == user_id,
                CalendarEventSubscription.event_type == event_type,
                CalendarEventSubscription.tmdb_id == tmdb_id,
                _match_nullable(CalendarEventSubscription.season_number, season_number),
                _match_nullable(CalendarEventSubscription.episode_number, episode_number),
            )
            .first()
        )

    def add_subscription(
        self,
        user_id: int,
        event_type: CalendarEventType,
        tmdb_id: int,
        title: str,
        season_number: int | None = None,
        episode_number: int | None = None,
        air_date: date | None = None,
    ) -> dict[str, Any]:
        """
        Subscribe to a release.

        Subscribing again to the same event re-enables its notification
        instead of adding a second row.
        """
        with self.db.transaction() as session:
            row = self._find_subscription(session, user_id, event_type, tmdb_id, season_number, episode_number)
            if row is None:
                row = CalendarEventSubscription(
                    user_id=user_id,
                    event_type=event_type,
                    tmdb_id=tmdb_id,
                    season_number=season_number,
                    episode_number=episode_number,
                    title=title,
                    air_date=air_date,
                )
                session.add(row)
            else:
                row.notify_on_available = True
                row.title = title
                if air_date is not None:
                    row.air_date = air_date
            session.flush()
            return _subscription_dict(row)

    def remove_subscription(self, subscription_id: int, user_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(CalendarEventSubscription)
                .filter(
                    CalendarEventSubscription.id == subscription_id,
                    CalendarEventSubscription.user_id == user_id,
                )
                .delete(synchronize_session=False)
            )
        return deleted > 0

    def list_active_subscriptions(self) -> list[dict[str, Any]]:
        """Subscriptions still waiting to notify, oldest first."""
        with self.db.session() as session:
            rows = (
                session.query(CalendarEventSubscription)
                .filter(CalendarEventSubscription.notify_on_available.is_(True))
                .order_by(CalendarEventSubscription.created_at.asc(), CalendarEventSubscription.id.asc())
                .all()
            )
        return [_subscription_dict(row) for row in rows]

    def disable_notifications(self, subscription_id: int) -> None:
        with self.db.transaction() as session:
            session.query(CalendarEventSubscription).filter(CalendarEventSubscription.id == subscription_id).update(
                {CalendarEventSubscription.notify_on_available: False}, synchronize_session=False
            )
