"""
Request quota resolution.

Global defaults live in app settings; per-user overrides live on the user row.
A non-positive effective limit means unlimited, and in that case the usage
counter is never consulted.
"""

import math
from datetime import timedelta
from typing import Literal

import structlog

from requestarr.database import utcnow
from requestarr.schemas.settings import RequestLimit, RequestLimitDefaults, RequestLimitStatus
from requestarr.services.requests import RequestStore
from requestarr.services.settings_store import SettingsStore
from requestarr.services.users import UserStore

logger = structlog.get_logger()

DEFAULT_REQUEST_LIMIT = 0
DEFAULT_REQUEST_DAYS = 7

LIMIT_SETTING_KEYS = {
    "movie": ("request_limit_movie", "request_limit_movie_days"),
    "series": ("request_limit_series", "request_limit_series_days"),
}


def normalize_limit(value: float | int | None, fallback: int = DEFAULT_REQUEST_LIMIT) -> int:
    if value is None or not math.isfinite(value):
        return fallback
    return max(0, math.floor(value))


def normalize_days(value: float | int | None, fallback: int = DEFAULT_REQUEST_DAYS) -> int:
    if value is None or not math.isfinite(value):
        return fallback
    return max(1, math.floor(value))


class RequestLimitService:
    """Resolves effective request limits and current usage for users."""

    def __init__(self, settings_store: SettingsStore, users: UserStore, requests: RequestStore):
        self.settings_store = settings_store
        self.users = users
        self.requests = requests
        logger.info("request_limit_service_initialized")

    def get_default_request_limits(self) -> RequestLimitDefaults:
        """Global defaults from settings, normalized (limit >= 0, days >= 1)."""
        limits = {}
        for kind, (limit_key, days_key) in LIMIT_SETTING_KEYS.items():
            limits[kind] = RequestLimit(
                limit=normalize_limit(self.settings_store.get_setting_int(limit_key, DEFAULT_REQUEST_LIMIT)),
                days=normalize_days(self.settings_store.get_setting_int(days_key, DEFAULT_REQUEST_DAYS)),
            )
        return RequestLimitDefaults(**limits)

    def set_default_request_limits(
        self,
        movie_limit: int,
        movie_days: int,
        series_limit: int,
        series_days: int,
    ) -> RequestLimitDefaults:
        values = {
            "request_limit_movie": normalize_limit(movie_limit),
            "request_limit_movie_days": normalize_days(movie_days),
            "request_limit_series": normalize_limit(series_limit),
            "request_limit_series_days": normalize_days(series_days),
        }
        for key, value in values.items():
            self.settings_store.set_setting(key, str(value))

        logger.info("default_request_limits_updated", **values)
        return self.get_default_request_limits()

    def get_effective_request_limits(self, user_id: int) -> RequestLimitDefaults:
        """Defaults with the user's non-null overrides applied."""
        defaults = self.get_default_request_limits()
        overrides = self.users.get_user_request_limit_overrides(user_id)

        def pick(override: int | None, default: int) -> int:
            return default if override is None else override

        return RequestLimitDefaults(
            movie=RequestLimit(
                limit=normalize_limit(pick(overrides["movie_limit"], defaults.movie.limit), defaults.movie.limit),
                days=normalize_days(pick(overrides["movie_days"], defaults.movie.days), defaults.movie.days),
            ),
            series=RequestLimit(
                limit=normalize_limit(pick(overrides["series_limit"], defaults.series.limit), defaults.series.limit),
                days=normalize_days(pick(overrides["series_days"], defaults.series.days), defaults.series.days),
            ),
        )

    def get_user_request_limit_status(
        self,
        user_id: int,
        request_type: Literal["movie", "episode"],
    ) -> RequestLimitStatus:
        """
        Current quota for a user.

        Args:
            user_id: User to resolve for
            request_type: ``movie`` or ``episode`` (episodes use the series limit)

        Returns:
            RequestLimitStatus: ``unlimited`` with no usage lookup when the
            effective limit is 0, otherwise the usage within the window
        """
        limits = self.get_effective_request_limits(user_id)
        config = limits.movie if request_type == "movie" else limits.series

        if config.limit <= 0:
            return RequestLimitStatus(limit=0, days=config.days, used=0, remaining=None, unlimited=True)

        since = utcnow() - timedelta(days=config.days)
        used = self.requests.count_user_requests_since(user_id, request_type, since)
        return RequestLimitStatus(
            limit=config.limit,
            days=config.days,
            used=used,
            remaining=max(config.limit - used, 0),
            unlimited=False,
        )
