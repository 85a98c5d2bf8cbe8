"""ApprovalRule model consulted by the auto-approval decision logic."""

from typing import Literal

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Index, Integer, String, Text

from requestarr.database import Base, utcnow

ApprovalRuleType = Literal["user_trust", "popularity", "time_based", "genre", "content_rating"]

APPROVAL_RULE_TYPES: tuple[str, ...] = ("user_trust", "popularity", "time_based", "genre", "content_rating")


class ApprovalRule(Base):
    """
    Named, priority-ordered approval predicate.

    Higher priority rules are evaluated first. The shape of `conditions`
    depends on `rule_type`.
    """

    __tablename__ = "approval_rule"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    rule_type = Column(
        Enum(*APPROVAL_RULE_TYPES, name="approval_rule_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    conditions = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_approval_rule_enabled_priority", "enabled", "priority"),)

    def __repr__(self) -> str:
        return f"<ApprovalRule(id={self.id}, name='{self.name}', priority={self.priority})>"
