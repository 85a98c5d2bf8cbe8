"""Auto-approval rule storage."""

from typing import Any

import structlog

from requestarr.database import DatabaseContext, utcnow
from requestarr.models import ApprovalRule
from requestarr.models.approval_rule import APPROVAL_RULE_TYPES

logger = structlog.get_logger()

UPDATABLE_RULE_FIELDS = frozenset({"name", "description", "enabled", "priority", "conditions"})


class InvalidRuleTypeError(ValueError):
    """Raised when a rule type is not one of APPROVAL_RULE_TYPES."""

    pass


def _rule_dict(row: ApprovalRule) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "enabled": row.enabled,
        "priority": row.priority,
        "rule_type": row.rule_type,
        "conditions": row.conditions or {},
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


class ApprovalRuleStore:
    """Store for priority-ordered approval rules."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def create(
        self,
        name: str,
        rule_type: str,
        conditions: dict[str, Any],
        enabled: bool = True,
        priority: int = 0,
        description: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a rule.

        Raises:
            InvalidRuleTypeError: If rule_type is unknown
        """
        if rule_type not in APPROVAL_RULE_TYPES:
            raise InvalidRuleTypeError(f"Unknown approval rule type: {rule_type}")

        with self.db.transaction() as session:
            row = ApprovalRule(
                name=name,
                description=description,
                enabled=enabled,
                priority=priority,
                rule_type=rule_type,
                conditions=dict(conditions),
            )
            session.add(row)
            session.flush()
            result = _rule_dict(row)

        logger.info("approval_rule_created", rule_id=result["id"], rule_type=rule_type)
        return result

    def update(self, rule_id: int, **fields: Any) -> bool:
        """
        Partially update a rule and bump updated_at.

        Returns:
            bool: False when no fields were given or the rule does not exist

        Raises:
            ValueError: If a field cannot be updated (rule_type is fixed)
        """
        unknown = set(fields) - UPDATABLE_RULE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update approval rule fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        values = {getattr(ApprovalRule, name): value for name, value in fields.items()}
        values[ApprovalRule.updated_at] = utcnow()

        with self.db.transaction() as session:
            updated = (
                session.query(ApprovalRule)
                .filter(ApprovalRule.id == rule_id)
                .update(values, synchronize_session=False)
            )
        return updated > 0

    def delete(self, rule_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(ApprovalRule).filter(ApprovalRule.id == rule_id).delete(synchronize_session=False)
        return deleted > 0

    def list_rules(self) -> list[dict[str, Any]]:
        """Every rule, highest priority first."""
        with self.db.session() as session:
            rows = (
                session.query(ApprovalRule)
                .order_by(ApprovalRule.priority.desc(), ApprovalRule.created_at.desc(), ApprovalRule.id.desc())
                .all()
            )
        return [_rule_dict(row) for row in rows]

    def get(self, rule_id: int) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = session.get(ApprovalRule, rule_id)
        return _rule_dict(row) if row is not None else None

    def list_active(self) -> list[dict[str, Any]]:
        """Enabled rules in evaluation order."""
        with self.db.session() as session:
            rows = (
                session.query(ApprovalRule)
                .filter(ApprovalRule.enabled.is_(True))
                .order_by(ApprovalRule.priority.desc(), ApprovalRule.id.asc())
                .all()
            )
        return [_rule_dict(row) for row in rows]
