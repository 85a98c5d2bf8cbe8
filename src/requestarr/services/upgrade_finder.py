"""
Bookkeeping for the 4K upgrade finder job.

Hints cache the last availability check per title; overrides let an admin
exclude a title from the search.
"""

from typing import Any, Literal

import structlog

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import UpgradeFinderHint, UpgradeFinderOverride
from requestarr.models.media import MediaType

logger = structlog.get_logger()

HintStatus = Literal["available", "none", "error"]


class UpgradeFinderStore:
    def __init__(self, db: DatabaseContext):
        self.db = db

    def list_hints(self) -> list[dict[str, Any]]:
        """Hints, most recently checked first."""
        with self.db.session() as session:
            rows = session.query(UpgradeFinderHint).order_by(UpgradeFinderHint.checked_at.desc()).all()
        return [
            {
                "media_type": row.media_type,
                "media_id": row.media_id,
                "status": row.status,
                "hint_text": row.hint_text,
                "checked_at": row.checked_at,
            }
            for row in rows
        ]

    def upsert_hint(self, media_type: MediaType, media_id: int, status: HintStatus, hint_text: str | None = None) -> None:
        stmt = dialect_insert(self.db.dialect_name, UpgradeFinderHint).values(
            media_type=media_type,
            media_id=media_id,
            status=status,
            hint_text=hint_text,
            checked_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["media_type", "media_id"],
            set_={
                "status": stmt.excluded.status,
                "hint_text": stmt.excluded.hint_text,
                "checked_at": stmt.excluded.checked_at,
            },
        )
        with self.db.transaction() as session:
            session.execute(stmt)

    def list_overrides(self) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = session.query(UpgradeFinderOverride).order_by(UpgradeFinderOverride.updated_at.desc()).all()
        return [
            {
                "media_type": row.media_type,
                "media_id": row.media_id,
                "ignore_4k": row.ignore_4k,
                "updated_at": row.updated_at,
            }
            for row in rows
        ]

    def upsert_override(self, media_type: MediaType, media_id: int, ignore_4k: bool) -> None:
        stmt = dialect_insert(self.db.dialect_name, UpgradeFinderOverride).values(
            media_type=media_type,
            media_id=media_id,
            ignore_4k=ignore_4k,
            updated_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["media_type", "media_id"],
            set_={"ignore_4k": stmt.excluded.ignore_4k, "updated_at": stmt.excluded.updated_at},
        )
        with self.db.transaction() as session:
            session.execute(stmt)

        logger.info("upgrade_finder_override_saved", media_type=media_type, media_id=media_id, ignore_4k=ignore_4k)
