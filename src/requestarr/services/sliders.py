"""
Dashboard slider layouts.

Every user starts from the same sixteen built-in sliders. Built-ins can only
be toggled and reordered; custom sliders (TMDB keyword, genre, search, studio
or network rows) carry their own type, title and data.
"""

from enum import IntEnum
from typing import Any

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from requestarr.database import DatabaseContext, utcnow
from requestarr.models import DashboardSlider

logger = structlog.get_logger()


class SliderType(IntEnum):
    RECENTLY_ADDED = 1
    FAVORITES = 2
    WATCHLIST = 3
    RECENT_REQUESTS = 4
    CONTINUE_WATCHING = 5
    TRENDING = 6
    POPULAR_MOVIES = 7
    MOVIE_GENRES = 8
    UPCOMING_MOVIES = 9
    POPULAR_TV = 10
    TV_GENRES = 11
    UPCOMING_TV = 12
    TOP_RATED_MOVIES = 13
    TOP_RATED_TV = 14
    NETWORKS = 15
    RECENTLY_VIEWED = 16

    TMDB_MOVIE_KEYWORD = 100
    TMDB_TV_KEYWORD = 101
    TMDB_MOVIE_GENRE = 102
    TMDB_TV_GENRE = 103
    TMDB_SEARCH = 104
    TMDB_STUDIO = 105
    TMDB_NETWORK = 106


# (type, enabled) in display order
DEFAULT_SLIDERS: tuple[tuple[SliderType, bool], ...] = (
    (SliderType.RECENTLY_ADDED, True),
    (SliderType.FAVORITES, True),
    (SliderType.WATCHLIST, True),
    (SliderType.RECENT_REQUESTS, True),
    (SliderType.CONTINUE_WATCHING, True),
    (SliderType.RECENTLY_VIEWED, False),
    (SliderType.TRENDING, True),
    (SliderType.POPULAR_MOVIES, True),
    (SliderType.POPULAR_TV, True),
    (SliderType.MOVIE_GENRES, True),
    (SliderType.UPCOMING_MOVIES, True),
    (SliderType.TV_GENRES, True),
    (SliderType.UPCOMING_TV, True),
    (SliderType.TOP_RATED_MOVIES, True),
    (SliderType.TOP_RATED_TV, True),
    (SliderType.NETWORKS, True),
)


def _slider_dict(row: DashboardSlider) -> dict[str, Any]:
    return {
        "id": row.id,
        "type": row.type,
        "title": row.title,
        "data": row.data,
        "enabled": row.enabled,
        "order": row.order_index,
        "is_builtin": row.is_builtin,
    }


def _insert_defaults(session: Session, user_id: int) -> None:
    session.add_all(
        DashboardSlider(
            user_id=user_id,
            type=int(slider_type),
            enabled=enabled,
            order_index=order,
            is_builtin=True,
        )
        for order, (slider_type, enabled) in enumerate(DEFAULT_SLIDERS)
    )


class DashboardSliderStore:
    """Store for per-user dashboard slider layouts."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def _bootstrap(self, user_id: int) -> None:
        with self.db.transaction() as session:
            existing = session.query(func.count(DashboardSlider.id)).filter(DashboardSlider.user_id == user_id).scalar()
            if existing:
                return
            _insert_defaults(session, user_id)

        logger.info("dashboard_sliders_bootstrapped", user_id=user_id)

    def list_for_user(self, user_id: int) -> list[dict[str, Any]]:
        """
        A user's sliders in display order.

        The built-in defaults are created on first access.
        """
        self._bootstrap(user_id)
        with self.db.session() as session:
            rows = (
                session.query(DashboardSlider)
                .filter(DashboardSlider.user_id == user_id)
                .order_by(DashboardSlider.order_index.asc(), DashboardSlider.id.asc())
                .all()
            )
        return [_slider_dict(row) for row in rows]

    def reset_for_user(self, user_id: int) -> None:
        """Drop every slider of the user, custom ones included, and restore the defaults."""
        with self.db.transaction() as session:
            session.query(DashboardSlider).filter(DashboardSlider.user_id == user_id).delete(synchronize_session=False)
            _insert_defaults(session, user_id)

        logger.info("dashboard_sliders_reset", user_id=user_id)

    def update_for_user(self, user_id: int, sliders: list[dict[str, Any]]) -> None:
        """
        Save a full layout.

        Position in ``sliders`` becomes the order. Known built-ins change only
        ``enabled`` and order; known customs change every field; entries with
        an unknown id are inserted as custom sliders.
        """
        now = utcnow()
        with self.db.transaction() as session:
            existing = {
                row.id: row for row in session.query(DashboardSlider).filter(DashboardSlider.user_id == user_id)
            }
            for index, slider in enumerate(sliders):
                row = existing.get(slider.get("id"))
                if row is None:
                    session.add(
                        DashboardSlider(
                            user_id=user_id,
                            type=int(slider["type"]),
                            title=slider.get("title"),
                            data=slider.get("data"),
                            enabled=bool(slider.get("enabled")),
                            order_index=index,
                            is_builtin=False,
                        )
                    )
                    continue

                row.enabled = bool(slider.get("enabled"))
                row.order_index = index
                row.updated_at = now
                if not row.is_builtin:
                    row.type = int(slider["type"])
                    row.title = slider.get("title")
                    row.data = slider.get("data")

    def create_custom(self, user_id: int, slider_type: int, title: str, data: str) -> dict[str, Any]:
        """Append a disabled custom slider after the user's last one."""
        with self.db.transaction() as session:
            last_order = (
                session.query(func.max(DashboardSlider.order_index)).filter(DashboardSlider.user_id == user_id).scalar()
            )
            row = DashboardSlider(
                user_id=user_id,
                type=int(slider_type),
                title=title,
                data=data,
                enabled=False,
                order_index=0 if last_order is None else last_order + 1,
                is_builtin=False,
            )
            session.add(row)
            session.flush()
            return _slider_dict(row)

    def update_custom(self, user_id: int, slider_id: int, slider_type: int, title: str, data: str) -> dict[str, Any] | None:
        with self.db.transaction() as session:
            row = (
                session.query(DashboardSlider)
                .filter(
                    DashboardSlider.user_id == user_id,
                    DashboardSlider.id == slider_id,
                    DashboardSlider.is_builtin.is_(False),
                )
                .first()
            )
            if row is None:
                return None
            row.type = int(slider_type)
            row.title = title
            row.data = data
            row.updated_at = utcnow()
            session.flush()
            return _slider_dict(row)

    def delete_custom(self, user_id: int, slider_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(DashboardSlider)
                .filter(
                    DashboardSlider.user_id == user_id,
                    DashboardSlider.id == slider_id,
                    DashboardSlider.is_builtin.is_(False),
                )
                .delete(synchronize_session=False)
            )
        return deleted > 0
