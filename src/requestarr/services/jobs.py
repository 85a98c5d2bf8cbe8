"""
Job store for Requestarr.

Persists the scheduler's job descriptors: schedule, run bookkeeping and a
consecutive-failure circuit breaker that disables a job once it reaches the
configured number of failures.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from apscheduler.triggers.cron import CronTrigger

from requestarr.database import DatabaseContext, utcnow
from requestarr.models import Job

logger = structlog.get_logger()

ADMIN_DISABLED_REASON = "Disabled by admin"

# Crontab weekdays start at Sunday (0 or 7), APScheduler weekdays at Monday
CRON_DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _crontab_day(value: str) -> int:
    value = value.strip().lower()
    if value[:3] in CRON_DAY_NAMES and value.isalpha():
        return CRON_DAY_NAMES.index(value[:3])
    if not value.isdigit() or int(value) > 7:
        raise ValueError(f"Invalid day of week: {value}")
    return int(value) % 7


def crontab_day_of_week(field: str) -> str:
    """
    Translate a crontab day-of-week field into APScheduler weekday names.

    Supports ``*``, single days, ranges, lists and ``/`` steps, with numbers
    (0-7) or three-letter names, e.g. ``1-5`` becomes ``mon,tue,wed,thu,fri``.
    """
    if field == "*":
        return field

    days: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) < 1:
                raise ValueError(f"Invalid day of week step: {part}")
            step = int(step_text)

        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            low, high = base.split("-", 1)
            start, end = _crontab_day(low), _crontab_day(high)
            # 5-7 and fri-sun run through Sunday
            if high.strip() == "7" or (end == 0 and start > 0):
                end = 7
        else:
            start = _crontab_day(base)
            end = 6 if step_text else start

        if start > end:
            raise ValueError(f"Invalid day of week range: {part}")
        days.update(day % 7 for day in range(start, end + 1, step))

    return ",".join(CRON_DAY_NAMES[day] for day in sorted(days))


def compute_next_run(schedule: str, after: datetime | None = None) -> datetime:
    """
    Next fire time of a five-field cron expression.

    Args:
        schedule: Cron expression, e.g. ``*/5 * * * *`` (evaluated in UTC)
        after: Reference time (naive UTC, defaults to now); the result is
            strictly later

    Returns:
        datetime: Naive UTC fire time

    Raises:
        ValueError: If the expression cannot be parsed
    """
    fields = schedule.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields in cron expression: {schedule}")
    minute, hour, day, month, day_of_week = fields

    after = after or utcnow()
    trigger = CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=crontab_day_of_week(day_of_week),
        timezone="UTC",
    )
    reference = (after + timedelta(seconds=1)).replace(tzinfo=UTC)
    next_fire = trigger.get_next_fire_time(None, reference)
    if next_fire is None:
        raise ValueError(f"Cron expression never fires: {schedule}")
    return next_fire.astimezone(UTC).replace(tzinfo=None)


def _job_dict(row: Job) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "schedule": row.schedule,
        "interval_seconds": row.interval_seconds,
        "type": row.type,
        "enabled": row.enabled,
        "last_run": row.last_run,
        "next_run": row.next_run,
        "run_on_start": row.run_on_start,
        "failure_count": row.failure_count or 0,
        "last_error": row.last_error,
        "disabled_reason": row.disabled_reason,
    }


class JobStore:
    """Store for scheduled job descriptors."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def list_jobs(self) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = session.query(Job).order_by(Job.name.asc()).all()
        return [_job_dict(row) for row in rows]

    def get_job(self, name: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = session.query(Job).filter(Job.name == name).first()
        return _job_dict(row) if row is not None else None

    def _update(self, job_id: int, values: dict) -> bool:
        with self.db.transaction() as session:
            updated = session.query(Job).filter(Job.id == job_id).update(values, synchronize_session=False)
        return updated > 0

    def update_job(self, job_id: int, schedule: str, interval_seconds: int) -> bool:
        return self._update(job_id, {Job.schedule: schedule, Job.interval_seconds: interval_seconds})

    def update_job_schedule(self, job_id: int, schedule: str, interval_seconds: int, next_run: datetime) -> bool:
        updated = self._update(
            job_id,
            {Job.schedule: schedule, Job.interval_seconds: interval_seconds, Job.next_run: next_run},
        )
        logger.info("job_schedule_updated", job_id=job_id, schedule=schedule)
        return updated

    def update_job_run(self, job_id: int, last_run: datetime, next_run: datetime) -> bool:
        """
        Record a successful run.

        Resets the failure counter and last error. A job disabled by the
        circuit breaker stays disabled.
        """
        return self._update(
            job_id,
            {
                Job.last_run: last_run,
                Job.next_run: next_run,
                Job.failure_count: 0,
                Job.last_error: None,
            },
        )

    def set_job_enabled(self, job_id: int, enabled: bool, next_run: datetime | None = None) -> bool:
        """
        Enable or disable a job from the admin UI.

        Enabling clears the disable reason and failure state (and sets
        next_run when given); disabling records the admin as the reason.
        """
        if enabled:
            values = {
                Job.enabled: True,
                Job.disabled_reason: None,
                Job.failure_count: 0,
                Job.last_error: None,
            }
            if next_run is not None:
                values[Job.next_run] = next_run
        else:
            values = {Job.enabled: False, Job.disabled_reason: ADMIN_DISABLED_REASON}

        updated = self._update(job_id, values)
        logger.info("job_enabled_changed", job_id=job_id, enabled=enabled)
        return updated

    def record_job_failure(self, job_id: int, error: str, max_failures: int) -> int:
        """
        Count a failed run.

        Args:
            job_id: Failing job
            error: Error message stored as last_error
            max_failures: Consecutive failures that disable the job

        Returns:
            int: The failure count after this failure (0 if the job is unknown)
        """
        with self.db.transaction() as session:
            session.query(Job).filter(Job.id == job_id).update(
                {Job.failure_count: Job.failure_count + 1, Job.last_error: error},
                synchronize_session=False,
            )
            failures = session.query(Job.failure_count).filter(Job.id == job_id).scalar() or 0

            if failures and failures >= max_failures:
                session.query(Job).filter(Job.id == job_id).update(
                    {Job.enabled: False, Job.disabled_reason: f"Disabled after {failures} failures"},
                    synchronize_session=False,
                )

        if failures and failures >= max_failures:
            logger.error("job_disabled_after_failures", job_id=job_id, failures=failures, error=error)
        else:
            logger.warning("job_failed", job_id=job_id, failures=failures, error=error)
        return failures
