"""
Request Lifecycle Engine for Requestarr.

This module provides the media request store:
- Transactional creation of a request with its provider items
- Duplicate detection backed by the active-request unique indexes
- Status tracking across the fulfillment pipeline
- Listing, paging and per-user statistics
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

import structlog
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from requestarr.database import DatabaseContext, is_unique_violation, safe_rollback
from requestarr.models import ACTIVE_REQUEST_STATUSES, MediaRequest, RequestItem, User
from requestarr.models.request import SYNC_REQUEST_STATUSES
from requestarr.schemas.request import RequestItemSpec

logger = structlog.get_logger()

RequestType = Literal["movie", "episode"]


class ActiveRequestExistsError(Exception):
    """
    Raised when an active request for the same media already exists.

    Attributes:
        request_id: Id of the conflicting active request, when it could be found
    """

    def __init__(self, message: str = "Active request already exists", request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


def _request_dict(request: MediaRequest, user: User | None = None) -> dict[str, Any]:
    data = {
        "id": request.id,
        "request_type": request.request_type,
        "tmdb_id": request.tmdb_id,
        "title": request.title,
        "status": request.status,
        "created_at": request.created_at,
        "poster_path": request.poster_path,
        "backdrop_path": request.backdrop_path,
        "release_year": request.release_year,
    }
    if user is not None:
        data["username"] = user.username
        data["user_id"] = user.id
    return data


def _item_dict(item: RequestItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "provider": item.provider,
        "provider_id": item.provider_id,
        "season": item.season,
        "episode": item.episode,
        "status": item.status,
        "created_at": item.created_at,
    }


def _lockstep_item_status(request_status: str, item_status: str | None) -> str:
    """An item is active exactly when its request is; otherwise it takes the request's status."""
    if item_status is None:
        return request_status
    if (item_status in ACTIVE_REQUEST_STATUSES) != (request_status in ACTIVE_REQUEST_STATUSES):
        return request_status
    return item_status


def _sync_item_statuses(session: Session, request_id: str, status: str) -> int:
    """Move the items whose active-set membership no longer matches the request's status."""
    active = RequestItem.status.in_(ACTIVE_REQUEST_STATUSES)
    mismatched = ~active if status in ACTIVE_REQUEST_STATUSES else active
    return (
        session.query(RequestItem)
        .filter(RequestItem.request_id == request_id, mismatched)
        .update({RequestItem.status: status}, synchronize_session=False)
    )


def _episode_coordinates(specs: Iterable[RequestItemSpec]) -> list[tuple[int, int]]:
    return [(s.season, s.episode) for s in specs if s.season is not None and s.episode is not None]


class RequestStore:
    """
    Store for media requests and their provider items.

    Every method opens its own scoped session, so a single store instance can
    be shared between threads.
    """

    def __init__(self, db: DatabaseContext):
        """
        Initialize request store.

        Args:
            db: Database context owning the engine and session factory
        """
        self.db = db
        logger.info("request_store_initialized")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_request_with_items(
        self,
        request_type: RequestType,
        tmdb_id: int,
        title: str,
        user_id: int,
        items: Iterable[RequestItemSpec | dict],
        request_status: str = "queued",
        final_status: str | None = None,
        poster_path: str | None = None,
        backdrop_path: str | None = None,
        release_year: int | None = None,
    ) -> str:
        """
        Create a request and its items in one transaction.

        Args:
            request_type: ``movie`` or ``episode``
            tmdb_id: TMDB id of the movie or show
            title: Display title
            user_id: Requesting user
            items: Provider items to attach
            request_status: Status the request and its items are inserted with
            final_status: Status to move the request to before commit, if different
            poster_path: Cached poster path
            backdrop_path: Cached backdrop path
            release_year: Cached release year

        Returns:
            str: Id of the new request

        Raises:
            ActiveRequestExistsError: If an active request for the same movie or
                episode already exists; carries the conflicting id when found
            ValueError: If the same episode is listed twice
            IntegrityError: For any other constraint failure (nothing persists)
        """
        specs = [item if isinstance(item, RequestItemSpec) else RequestItemSpec.model_validate(item) for item in items]
        coordinates = _episode_coordinates(specs)
        repeated = sorted({c for c in coordinates if coordinates.count(c) > 1})
        if repeated:
            labels = ", ".join(f"S{season}E{episode}" for season, episode in repeated)
            raise ValueError(f"Episode listed more than once in the request: {labels}")

        duplicate_error: IntegrityError | None = None

        with self.db.session() as session:
            try:
                request = MediaRequest(
                    request_type=request_type,
                    tmdb_id=tmdb_id,
                    title=title,
                    requested_by=user_id,
                    status=request_status,
                    poster_path=poster_path,
                    backdrop_path=backdrop_path,
                    release_year=release_year,
                )
                session.add(request)
                session.flush()

                for item_spec in specs:
                    session.add(
                        RequestItem(
                            request_id=request.id,
                            tmdb_id=tmdb_id,
                            provider=item_spec.provider,
                            provider_id=item_spec.provider_id,
                            season=item_spec.season,
                            episode=item_spec.episode,
                            status=_lockstep_item_status(request_status, item_spec.status),
                        )
                    )
                session.flush()

                if final_status and final_status != request_status:
                    session.query(MediaRequest).filter(MediaRequest.id == request.id).update(
                        {MediaRequest.status: final_status}, synchronize_session=False
                    )
                    _sync_item_statuses(session, request.id, final_status)

                session.commit()
                request_id = request.id

            except IntegrityError as e:
                safe_rollback(session)
                if not is_unique_violation(e):
                    raise
                duplicate_error = e

            except Exception:
                safe_rollback(session)
                raise

        # The scoped session has released its connection; look up the winner
        if duplicate_error is not None:
            self._raise_active_request_exists(duplicate_error, request_type, tmdb_id, coordinates)

        logger.info(
            "request_created",
            request_id=request_id,
            request_type=request_type,
            tmdb_id=tmdb_id,
            user_id=user_id,
            items=len(specs),
        )
        return request_id

    def _raise_active_request_exists(
        self,
        duplicate_error: IntegrityError,
        request_type: RequestType,
        tmdb_id: int,
        coordinates: list[tuple[int, int]],
    ) -> None:
        existing_id = None
        try:
            existing_id = self._find_conflicting_request_id(request_type, tmdb_id, coordinates)
        except Exception as lookup_error:
            logger.error(
                "active_request_lookup_failed",
                request_type=request_type,
                tmdb_id=tmdb_id,
                error=str(lookup_error),
            )

        logger.info(
            "active_request_exists",
            request_type=request_type,
            tmdb_id=tmdb_id,
            existing_request_id=existing_id,
        )
        raise ActiveRequestExistsError("Active request already exists", existing_id) from duplicate_error

    def _find_conflicting_request_id(
        self,
        request_type: RequestType,
        tmdb_id: int,
        coordinates: list[tuple[int, int]],
    ) -> str | None:
        episodes_by_season: dict[int, list[int]] = defaultdict(list)
        for season, episode in coordinates:
            episodes_by_season[season].append(episode)

        if request_type == "episode" and episodes_by_season:
            for season, episodes in sorted(episodes_by_season.items()):
                rows = self.find_active_episode_request_items(tmdb_id, season, episodes)
                if rows:
                    return rows[0]["request_id"]
            return None

        existing = self.find_active_request_by_tmdb(request_type, tmdb_id)
        return existing["id"] if existing else None

    def create_request(
        self,
        request_type: RequestType,
        tmdb_id: int,
        title: str,
        user_id: int,
        status: str = "queued",
        poster_path: str | None = None,
        backdrop_path: str | None = None,
        release_year: int | None = None,
    ) -> str:
        """Insert a request without items and return its id."""
        with self.db.transaction() as session:
            request = MediaRequest(
                request_type=request_type,
                tmdb_id=tmdb_id,
                title=title,
                requested_by=user_id,
                status=status,
                poster_path=poster_path,
                backdrop_path=backdrop_path,
                release_year=release_year,
            )
            session.add(request)
            session.flush()
            request_id = request.id

        logger.info("request_created", request_id=request_id, request_type=request_type, tmdb_id=tmdb_id)
        return request_id

    def add_request_item(
        self,
        request_id: str,
        provider: Literal["sonarr", "radarr"],
        provider_id: int | None = None,
        season: int | None = None,
        episode: int | None = None,
        status: str = "queued",
    ) -> int:
        """Attach an item to an existing request; its status follows the request's active state."""
        with self.db.transaction() as session:
            parent = session.query(MediaRequest.tmdb_id, MediaRequest.status).filter(MediaRequest.id == request_id).first()
            if parent is None:
                raise ValueError(f"Request {request_id} not found")

            item = RequestItem(
                request_id=request_id,
                tmdb_id=parent.tmdb_id,
                provider=provider,
                provider_id=provider_id,
                season=season,
                episode=episode,
                status=_lockstep_item_status(parent.status, status),
            )
            session.add(item)
            session.flush()
            return item.id

    # ------------------------------------------------------------------
    # Active request lookups
    # ------------------------------------------------------------------

    def find_active_request_by_tmdb(self, request_type: RequestType, tmdb_id: int) -> dict[str, Any] | None:
        """Newest active request for a movie or show, as {id, status, created_at}."""
        with self.db.session() as session:
            row = (
                session.query(MediaRequest.id, MediaRequest.status, MediaRequest.created_at)
                .filter(
                    MediaRequest.request_type == request_type,
                    MediaRequest.tmdb_id == tmdb_id,
                    MediaRequest.status.in_(ACTIVE_REQUEST_STATUSES),
                )
                .order_by(MediaRequest.created_at.desc())
                .first()
            )

        if row is None:
            return None
        return {"id": row.id, "status": row.status, "created_at": row.created_at}

    def find_active_requests_by_tmdb_ids(self, request_type: RequestType, tmdb_ids: list[int]) -> list[dict[str, Any]]:
        if not tmdb_ids:
            return []

        with self.db.session() as session:
            rows = (
                session.query(MediaRequest.tmdb_id, MediaRequest.id, MediaRequest.status)
                .filter(
                    MediaRequest.request_type == request_type,
                    MediaRequest.tmdb_id.in_(tmdb_ids),
                    MediaRequest.status.in_(ACTIVE_REQUEST_STATUSES),
                )
                .all()
            )

        return [{"tmdb_id": r.tmdb_id, "id": r.id, "status": r.status} for r in rows]

    def _active_episode_items_query(self, session: Session, tmdb_id: int):
        return (
            session.query(
                RequestItem.season,
                RequestItem.episode,
                MediaRequest.id.label("request_id"),
                MediaRequest.status.label("request_status"),
            )
            .join(MediaRequest, MediaRequest.id == RequestItem.request_id)
            .filter(
                MediaRequest.request_type == "episode",
                MediaRequest.tmdb_id == tmdb_id,
                MediaRequest.status.in_(ACTIVE_REQUEST_STATUSES),
            )
        )

    def find_active_episode_request_items(
        self,
        tmdb_id: int,
        season: int,
        episode_numbers: list[int],
    ) -> list[dict[str, Any]]:
        """
        Active items requesting any of the given episodes of a season.

        Returns:
            list[dict]: {season, episode, request_id, request_status} per item
        """
        if not episode_numbers:
            return []

        with self.db.session() as session:
            rows = (
                self._active_episode_items_query(session, tmdb_id)
                .filter(RequestItem.season == season, RequestItem.episode.in_(episode_numbers))
                .all()
            )

        return [row._asdict() for row in rows]

    def list_active_episode_request_items_by_tmdb(self, tmdb_id: int) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                self._active_episode_items_query(session, tmdb_id)
                .order_by(RequestItem.season.asc(), RequestItem.episode.asc())
                .all()
            )

        return [row._asdict() for row in rows]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_requests_paged(
        self,
        limit: int,
        offset: int,
        statuses: list[str] | None = None,
        request_type: RequestType | None = None,
        requested_by_id: int | None = None,
    ) -> dict[str, Any]:
        """
        Page through requests, newest first.

        The count and the page are computed from the same filters.

        Returns:
            dict: {"total": int, "results": list[dict]}
        """
        filters = []
        if statuses:
            filters.append(MediaRequest.status.in_(statuses))
        if request_type:
            filters.append(MediaRequest.request_type == request_type)
        if requested_by_id is not None:
            filters.append(User.id == requested_by_id)

        with self.db.session() as session:
            total = (
                session.query(func.count(MediaRequest.id))
                .join(User, User.id == MediaRequest.requested_by)
                .filter(*filters)
                .scalar()
            )
            rows = (
                session.query(MediaRequest, User)
                .join(User, User.id == MediaRequest.requested_by)
                .filter(*filters)
                .order_by(MediaRequest.created_at.desc(), MediaRequest.id.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )

        return {
            "total": int(total or 0),
            "results": [_request_dict(request, user) for request, user in rows],
        }

    def list_recent_requests(self, limit: int = 25, username: str | None = None) -> list[dict[str, Any]]:
        with self.db.session() as session:
            query = session.query(MediaRequest, User).join(User, User.id == MediaRequest.requested_by)
            if username:
                query = query.filter(User.username == username)
            rows = query.order_by(MediaRequest.created_at.desc()).limit(limit).all()

        results = []
        for request, user in rows:
            data = _request_dict(request, user)
            data["avatar_url"] = user.avatar_url
            data["jellyfin_user_id"] = user.jellyfin_user_id
            results.append(data)
        return results

    def list_requests_by_username(self, username: str, limit: int = 100) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                session.query(MediaRequest, User)
                .join(User, User.id == MediaRequest.requested_by)
                .filter(User.username == username)
                .order_by(MediaRequest.created_at.desc())
                .limit(limit)
                .all()
            )

        return [_request_dict(request, user) for request, user in rows]

    def list_requests_for_sync(self, limit: int = 100) -> list[dict[str, Any]]:
        """
        Requests the reconciliation job should poll, oldest first.

        Only requests with at least one item are returned, each with its items.
        """
        with self.db.session() as session:
            rows = (
                session.query(MediaRequest, User)
                .join(User, User.id == MediaRequest.requested_by)
                .options(selectinload(MediaRequest.items))
                .filter(
                    MediaRequest.status.in_(SYNC_REQUEST_STATUSES),
                    MediaRequest.items.any(),
                )
                .order_by(MediaRequest.created_at.asc())
                .limit(limit)
                .all()
            )

            results = []
            for request, user in rows:
                data = _request_dict(request, user)
                data["requested_by"] = request.requested_by
                data["items"] = [_item_dict(item) for item in request.items]
                results.append(data)

        return results

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def get_user_request_stats(self, username: str) -> dict[str, int]:
        with self.db.session() as session:
            row = (
                session.query(
                    func.count(MediaRequest.id).label("total"),
                    func.count(case((MediaRequest.request_type == "movie", 1))).label("movie"),
                    func.count(case((MediaRequest.request_type == "episode", 1))).label("episode"),
                    func.count(case((MediaRequest.status.in_(("pending", "queued", "submitted")), 1))).label(
                        "pending"
                    ),
                    func.count(case((MediaRequest.status == "available", 1))).label("available"),
                    func.count(case((MediaRequest.status.in_(("failed", "denied")), 1))).label("failed"),
                )
                .join(User, User.id == MediaRequest.requested_by)
                .filter(User.username == username)
                .one()
            )

        return {key: int(value or 0) for key, value in row._asdict().items()}

    def get_request_counts(self) -> dict[str, int]:
        with self.db.session() as session:
            row = session.query(
                func.count(MediaRequest.id).label("total"),
                func.count(case((MediaRequest.request_type == "movie", 1))).label("movie"),
                func.count(case((MediaRequest.request_type == "episode", 1))).label("episode"),
                func.count(case((MediaRequest.status.in_(("pending", "queued")), 1))).label("pending"),
                func.count(case((MediaRequest.status == "submitted", 1))).label("submitted"),
                func.count(case((MediaRequest.status == "available", 1))).label("available"),
                func.count(case((MediaRequest.status.in_(("failed", "denied")), 1))).label("failed"),
            ).one()

        return {key: int(value or 0) for key, value in row._asdict().items()}

    def get_pending_request_count(self) -> int:
        with self.db.session() as session:
            count = (
                session.query(func.count(MediaRequest.id))
                .filter(MediaRequest.status.in_(("pending", "queued")))
                .scalar()
            )
        return int(count or 0)

    def count_user_requests_since(self, user_id: int, request_type: RequestType, since: datetime) -> int:
        """Requests of a type made by a user at or after ``since``."""
        with self.db.session() as session:
            count = (
                session.query(func.count(MediaRequest.id))
                .filter(
                    MediaRequest.requested_by == user_id,
                    MediaRequest.request_type == request_type,
                    MediaRequest.created_at >= since,
                )
                .scalar()
            )
        return int(count or 0)

    # ------------------------------------------------------------------
    # Single request access
    # ------------------------------------------------------------------

    def get_request_by_id(self, request_id: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = (
                session.query(MediaRequest, User)
                .join(User, User.id == MediaRequest.requested_by)
                .filter(MediaRequest.id == request_id)
                .first()
            )

        if row is None:
            return None
        return _request_dict(*row)

    def list_request_items(self, request_id: str) -> list[dict[str, Any]]:
        with self.db.session() as session:
            items = (
                session.query(RequestItem)
                .filter(RequestItem.request_id == request_id)
                .order_by(RequestItem.id.asc())
                .all()
            )
        return [_item_dict(item) for item in items]

    def get_request_with_items(self, request_id: str) -> dict[str, Any] | None:
        request = self.get_request_by_id(request_id)
        if request is None:
            return None
        return {"request": request, "items": self.list_request_items(request_id)}

    def get_request_notification_context(self, request_id: str) -> dict[str, Any] | None:
        """Fields needed to render a notification about a request."""
        with self.db.session() as session:
            row = (
                session.query(
                    MediaRequest.id,
                    MediaRequest.request_type,
                    MediaRequest.tmdb_id,
                    MediaRequest.title,
                    MediaRequest.status,
                    MediaRequest.created_at,
                    User.username,
                    User.id.label("user_id"),
                )
                .join(User, User.id == MediaRequest.requested_by)
                .filter(MediaRequest.id == request_id)
                .first()
            )
        return row._asdict() if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_request_status(self, request_id: str, status: str) -> bool:
        """
        Move a request to a new status.

        The request's items follow it in and out of the active set: leaving
        releases the episodes they hold, re-entering claims them again.

        Returns:
            bool: True if the request exists

        Raises:
            ActiveRequestExistsError: If re-entering the active set collides
                with another active request for the same media
        """
        duplicate_error: IntegrityError | None = None
        coordinates: list[tuple[int, int]] = []

        with self.db.session() as session:
            try:
                request = (
                    session.query(MediaRequest.request_type, MediaRequest.tmdb_id)
                    .filter(MediaRequest.id == request_id)
                    .first()
                )
                if request is not None:
                    session.query(MediaRequest).filter(MediaRequest.id == request_id).update(
                        {MediaRequest.status: status}, synchronize_session=False
                    )
                    _sync_item_statuses(session, request_id, status)
                    session.commit()

            except IntegrityError as e:
                safe_rollback(session)
                if not is_unique_violation(e):
                    raise
                duplicate_error = e
                coordinates = [
                    (row.season, row.episode)
                    for row in session.query(RequestItem.season, RequestItem.episode).filter(
                        RequestItem.request_id == request_id,
                        RequestItem.season.isnot(None),
                        RequestItem.episode.isnot(None),
                    )
                ]

            except Exception:
                safe_rollback(session)
                raise

        if duplicate_error is not None:
            self._raise_active_request_exists(duplicate_error, request.request_type, request.tmdb_id, coordinates)

        logger.info("request_status_updated", request_id=request_id, status=status, found=request is not None)
        return request is not None

    def set_request_items_status(self, request_id: str, status: str) -> int:
        """
        Set the status of every item of a request.

        Raises:
            ValueError: If the status would move the items in or out of the
                active set without their request
        """
        with self.db.transaction() as session:
            request_status = session.query(MediaRequest.status).filter(MediaRequest.id == request_id).scalar()
            if request_status is None:
                return 0
            if (status in ACTIVE_REQUEST_STATUSES) != (request_status in ACTIVE_REQUEST_STATUSES):
                raise ValueError(
                    f"Item status '{status}' does not match the active state of request status '{request_status}'"
                )
            return (
                session.query(RequestItem)
                .filter(RequestItem.request_id == request_id)
                .update({RequestItem.status: status}, synchronize_session=False)
            )

    def set_request_items_provider_id(self, request_id: str, provider_id: int | None) -> int:
        with self.db.transaction() as session:
            return (
                session.query(RequestItem)
                .filter(RequestItem.request_id == request_id)
                .update({RequestItem.provider_id: provider_id}, synchronize_session=False)
            )

    def update_request_metadata(
        self,
        request_id: str,
        poster_path: str | None = None,
        backdrop_path: str | None = None,
        release_year: int | None = None,
    ) -> bool:
        """
        Fill in missing display metadata.

        Only NULL columns are written; existing values are kept.
        """
        if not poster_path and not backdrop_path and release_year is None:
            return False

        with self.db.transaction() as session:
            updated = (
                session.query(MediaRequest)
                .filter(MediaRequest.id == request_id)
                .update(
                    {
                        MediaRequest.poster_path: func.coalesce(MediaRequest.poster_path, poster_path or None),
                        MediaRequest.backdrop_path: func.coalesce(MediaRequest.backdrop_path, backdrop_path or None),
                        MediaRequest.release_year: func.coalesce(MediaRequest.release_year, release_year),
                    },
                    synchronize_session=False,
                )
            )
        return updated > 0

    def delete_request(self, request_id: str) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(MediaRequest).filter(MediaRequest.id == request_id).delete(synchronize_session=False)

        if deleted:
            logger.info("request_deleted", request_id=request_id)
        return deleted > 0

    def clear_requests_for_tmdb(self, media_type: Literal["movie", "tv"], tmdb_id: int) -> int:
        """
        Delete every request (and its items) for a movie or show.

        Returns:
            int: Number of requests deleted
        """
        request_type = "movie" if media_type == "movie" else "episode"

        with self.db.transaction() as session:
            ids = [
                row.id
                for row in session.query(MediaRequest.id).filter(
                    MediaRequest.request_type == request_type,
                    MediaRequest.tmdb_id == tmdb_id,
                )
            ]
            if ids:
                session.query(RequestItem).filter(RequestItem.request_id.in_(ids)).delete(synchronize_session=False)
                session.query(MediaRequest).filter(MediaRequest.id.in_(ids)).delete(synchronize_session=False)

        logger.info("requests_cleared_for_tmdb", media_type=media_type, tmdb_id=tmdb_id, deleted=len(ids))
        return len(ids)
