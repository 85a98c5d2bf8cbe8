"""
Job model for scheduled background task descriptors.

The scheduler itself lives outside the data core; this table records each
job's schedule, its run bookkeeping and the failure counter used to
auto-disable a job that keeps failing.
"""

from typing import Literal

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text

from requestarr.database import Base

JobType = Literal["system", "user"]

# Seeded on first migration, never overwritten afterwards
DEFAULT_JOBS: list[dict] = [
    {"name": "request-sync", "schedule": "*/5 * * * *", "interval_seconds": 300, "run_on_start": True},
    {"name": "watchlist-sync", "schedule": "0 * * * *", "interval_seconds": 3600, "run_on_start": False},
    {"name": "weekly-digest", "schedule": "0 9 * * 1", "interval_seconds": 604800, "run_on_start": False},
    {"name": "session-cleanup", "schedule": "0 * * * *", "interval_seconds": 3600, "run_on_start": True},
    {
        "name": "calendar-notifications",
        "schedule": "0 */6 * * *",
        "interval_seconds": 21600,
        "run_on_start": False,
    },
    {
        "name": "jellyfin-availability-sync",
        "schedule": "0 */4 * * *",
        "interval_seconds": 14400,
        "run_on_start": False,
    },
    {"name": "upgrade-finder-4k", "schedule": "0 3 * * *", "interval_seconds": 86400, "run_on_start": False},
]


class Job(Base):
    """
    Scheduled job descriptor.

    Tracks:
    - Cron-like schedule and equivalent interval
    - Last and next run timestamps
    - Consecutive failure count, last error and disable reason
    """

    __tablename__ = "jobs"

    # Primary key
    id = Column(Integer, primary_key=True)

    name = Column(
        String(255),
        unique=True,
        nullable=False,
        comment="Unique job name",
    )
    schedule = Column(
        String(50),
        default="0 * * * *",
        nullable=False,
        comment="Five-field cron expression",
    )
    interval_seconds = Column(Integer, default=3600, nullable=True)
    type = Column(
        Enum("system", "user", name="job_type_enum", native_enum=False, create_constraint=True),
        default="system",
        nullable=False,
    )
    enabled = Column(Boolean, default=True, nullable=False)

    # Run bookkeeping
    last_run = Column(DateTime, nullable=True)
    next_run = Column(DateTime, nullable=True)
    run_on_start = Column(Boolean, default=False, nullable=False)

    # Failure tracking
    failure_count = Column(
        Integer,
        default=0,
        nullable=False,
        comment="Consecutive failures since the last successful run",
    )
    last_error = Column(Text, nullable=True)
    disabled_reason = Column(
        Text,
        nullable=True,
        comment="Why the job was disabled (NULL while enabled)",
    )

    def __repr__(self) -> str:
        """String representation of Job."""
        return f"<Job(id={self.id}, name='{self.name}', enabled={self.enabled}, failures={self.failure_count})>"
