"""
Requestarr process wiring.

Application entry point with:
- Logging configuration
- Database context construction (fails fast on bad configuration)
- Schema migrations
- Construction of every store over the shared context
"""

from dataclasses import dataclass

import structlog

from requestarr.config import Settings
from requestarr.database import DatabaseContext, check_database_health
from requestarr.logging_config import configure_logging
from requestarr.migrations import run_migrations
from requestarr.services import (
    ApprovalRuleStore,
    CalendarStore,
    CredentialStore,
    DashboardSliderStore,
    JellyfinAvailabilityStore,
    JobStore,
    MediaIssueStore,
    MediaListStore,
    MediaShareStore,
    NotificationEndpointStore,
    PushSubscriptionStore,
    RecentlyViewedStore,
    RequestAnalyticsService,
    RequestCommentStore,
    RequestLimitService,
    RequestStore,
    SessionStore,
    SettingsStore,
    UpgradeFinderStore,
    UserNotificationStore,
    UserStore,
)

logger = structlog.get_logger(__name__)


@dataclass
class Stores:
    """Every store of the data core, sharing one DatabaseContext."""

    db: DatabaseContext
    settings: SettingsStore
    users: UserStore
    sessions: SessionStore
    credentials: CredentialStore
    requests: RequestStore
    request_limits: RequestLimitService
    comments: RequestCommentStore
    analytics: RequestAnalyticsService
    sliders: DashboardSliderStore
    recently_viewed: RecentlyViewedStore
    shares: MediaShareStore
    issues: MediaIssueStore
    calendar: CalendarStore
    push: PushSubscriptionStore
    notification_endpoints: NotificationEndpointStore
    user_notifications: UserNotificationStore
    approval_rules: ApprovalRuleStore
    jellyfin: JellyfinAvailabilityStore
    jobs: JobStore
    media_lists: MediaListStore
    upgrade_finder: UpgradeFinderStore


def build_stores(db: DatabaseContext, app_settings: Settings | None = None) -> Stores:
    """Construct every store over ``db``."""
    settings_store = SettingsStore(db, app_settings=app_settings)
    users = UserStore(db, app_settings=app_settings)
    requests = RequestStore(db)

    return Stores(
        db=db,
        settings=settings_store,
        users=users,
        sessions=SessionStore(db),
        credentials=CredentialStore(db),
        requests=requests,
        request_limits=RequestLimitService(settings_store, users, requests),
        comments=RequestCommentStore(db),
        analytics=RequestAnalyticsService(db),
        sliders=DashboardSliderStore(db),
        recently_viewed=RecentlyViewedStore(db),
        shares=MediaShareStore(db),
        issues=MediaIssueStore(db),
        calendar=CalendarStore(db),
        push=PushSubscriptionStore(db),
        notification_endpoints=NotificationEndpointStore(db),
        user_notifications=UserNotificationStore(db),
        approval_rules=ApprovalRuleStore(db),
        jellyfin=JellyfinAvailabilityStore(db),
        jobs=JobStore(db),
        media_lists=MediaListStore(db),
        upgrade_finder=UpgradeFinderStore(db),
    )


def startup(app_settings: Settings | None = None, migrate: bool = True) -> Stores:
    """
    Bring up the data core.

    Args:
        app_settings: Settings to use (defaults to the global settings)
        migrate: Apply pending schema migrations

    Returns:
        Stores: Ready-to-use stores

    Raises:
        DatabaseConfigurationError: If DATABASE_URL is missing or invalid
        MigrationError: If a migration fails
    """
    if app_settings is None:
        from requestarr.config import settings as app_settings

    configure_logging(app_settings)
    logger.info(
        "application_starting",
        app=app_settings.app_name,
        environment=app_settings.environment,
        log_level=app_settings.log_level,
    )

    db = DatabaseContext.from_settings(app_settings)
    try:
        if migrate:
            applied = run_migrations(db)
            logger.info("database_migrated", applied=applied)

        if not check_database_health(db):
            logger.warning("database_unreachable_at_startup")

        stores = build_stores(db, app_settings)
    except Exception as e:
        logger.error("application_startup_failed", error=str(e))
        db.dispose()
        raise

    logger.info("application_started", app=app_settings.app_name)
    return stores


def shutdown(stores: Stores) -> None:
    """Release the connection pool."""
    logger.info("application_shutting_down")
    stores.db.dispose()
    logger.info("application_shutdown_complete")
