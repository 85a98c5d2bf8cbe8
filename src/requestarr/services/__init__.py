"""
Data-access services for Requestarr.

This package provides the stores every caller goes through:
- Request lifecycle (requests, limits, comments, analytics)
- Identity (users, login sessions, WebAuthn/MFA credentials)
- Settings with an in-process TTL cache
- Auxiliary domain stores (notifications, calendar, shares, jobs, ...)

Each store receives a DatabaseContext and opens its own scoped session per
call, so a single instance can be shared across threads.
"""

from requestarr.services.analytics import RequestAnalyticsService
from requestarr.services.approval_rules import ApprovalRuleStore, InvalidRuleTypeError
from requestarr.services.calendar import CalendarStore
from requestarr.services.comments import RequestCommentStore
from requestarr.services.credentials import CredentialStore
from requestarr.services.issues import MediaIssueStore
from requestarr.services.jellyfin_availability import JellyfinAvailabilityStore
from requestarr.services.jobs import JobStore, compute_next_run
from requestarr.services.media_lists import MediaListStore
from requestarr.services.notifications import NotificationEndpointStore, UserNotificationStore
from requestarr.services.push import PushSubscriptionStore
from requestarr.services.recently_viewed import RecentlyViewedStore
from requestarr.services.request_limits import RequestLimitService
from requestarr.services.requests import ActiveRequestExistsError, RequestStore
from requestarr.services.sessions import SessionStore
from requestarr.services.settings_store import SettingsStore, TTLCache
from requestarr.services.shares import MediaShareStore
from requestarr.services.sliders import DashboardSliderStore
from requestarr.services.upgrade_finder import UpgradeFinderStore
from requestarr.services.users import UserStore

__all__ = [
    "ActiveRequestExistsError",
    "RequestStore",
    "RequestLimitService",
    "RequestCommentStore",
    "RequestAnalyticsService",
    "UserStore",
    "SessionStore",
    "CredentialStore",
    "SettingsStore",
    "TTLCache",
    "DashboardSliderStore",
    "RecentlyViewedStore",
    "MediaShareStore",
    "MediaIssueStore",
    "CalendarStore",
    "PushSubscriptionStore",
    "NotificationEndpointStore",
    "UserNotificationStore",
    "ApprovalRuleStore",
    "InvalidRuleTypeError",
    "JellyfinAvailabilityStore",
    "JobStore",
    "compute_next_run",
    "MediaListStore",
    "UpgradeFinderStore",
]
