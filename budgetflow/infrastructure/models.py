"""SQLAlchemy models for database tables.

``budgets`` holds the aggregate with its cached status; the audit trail is
stored one row per item in ``budget_audit_trail`` and never updated.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from budgetflow.infrastructure.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class BudgetModel(Base):
    """Budget row: descriptive fields plus approval state."""

    __tablename__ = "budgets"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    project_id = Column(String(64), nullable=True, index=True)
    currency = Column(String(3), nullable=False, default="KES")
    total_planned_cost = Column(BigInteger, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    # Cached projection of the last audit row, used for the optimistic guard
    status = Column(String(32), nullable=False, default="draft", index=True)
    version = Column(Integer, nullable=False, default=1)
    current_level_deadline = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(JSONType, nullable=False)
    updated_by = Column(JSONType, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    audit_trail = relationship(
        "BudgetAuditTrailModel",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetAuditTrailModel.sequence",
        lazy="selectin",
    )


class BudgetAuditTrailModel(Base):
    """One audit trail item. Rows are insert-only."""

    __tablename__ = "budget_audit_trail"
    __table_args__ = (UniqueConstraint("budget_id", "sequence", name="uq_budget_audit_sequence"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    budget_id = Column(
        String(64),
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    action = Column(String(32), nullable=False)
    from_status = Column(String(32), nullable=False)
    to_status = Column(String(32), nullable=False)
    performed_by = Column(JSONType, nullable=False)
    performed_at = Column(DateTime(timezone=True), nullable=False)
    details = Column(JSONType, nullable=False, default=dict)

    budget = relationship("BudgetModel", back_populates="audit_trail")
