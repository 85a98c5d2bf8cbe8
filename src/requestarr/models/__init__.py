"""
Database models for Requestarr.

This module exports all SQLAlchemy models for easy import throughout the
application. All models use the Base declarative base from database.py, so
importing this package registers every table on Base.metadata.
"""

from requestarr.models.approval_rule import ApprovalRule
from requestarr.models.calendar import (
    CalendarEventSubscription,
    CalendarFeedToken,
    CalendarPreferences,
)
from requestarr.models.jellyfin import JellyfinAvailability, JellyfinScanLog
from requestarr.models.job import Job
from requestarr.models.media import (
    DashboardSlider,
    MediaIssue,
    MediaShare,
    RecentlyViewed,
    UpgradeFinderHint,
    UpgradeFinderOverride,
    UserMediaListItem,
)
from requestarr.models.notification import (
    NotificationEndpoint,
    PushSubscription,
    UserNotification,
    UserNotificationEndpoint,
)
from requestarr.models.request import (
    ACTIVE_REQUEST_STATUSES,
    MediaRequest,
    RequestComment,
    RequestItem,
)
from requestarr.models.setting import AppSetting
from requestarr.models.user import (
    MfaSession,
    User,
    UserCredential,
    UserGroup,
    UserSession,
    WebAuthnChallenge,
)

# Export all models
__all__ = [
    "ACTIVE_REQUEST_STATUSES",
    "User",
    "UserGroup",
    "UserSession",
    "UserCredential",
    "WebAuthnChallenge",
    "MfaSession",
    "MediaRequest",
    "RequestItem",
    "RequestComment",
    "AppSetting",
    "Job",
    "ApprovalRule",
    "NotificationEndpoint",
    "UserNotificationEndpoint",
    "UserNotification",
    "PushSubscription",
    "MediaShare",
    "MediaIssue",
    "RecentlyViewed",
    "UserMediaListItem",
    "DashboardSlider",
    "UpgradeFinderHint",
    "UpgradeFinderOverride",
    "CalendarPreferences",
    "CalendarFeedToken",
    "CalendarEventSubscription",
    "JellyfinAvailability",
    "JellyfinScanLog",
]
