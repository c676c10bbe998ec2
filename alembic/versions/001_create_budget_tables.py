"""Create budgets and budget_audit_trail tables.

Revision ID: 001
Revises:
Create Date: 2026-10-16

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create budgets and budget_audit_trail tables."""
    op.create_table(
        "budgets",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("project_id", sa.String(64), nullable=True, index=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("total_planned_cost", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text, nullable=True),
        # Approval state, mirrors the last audit row
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default="draft",
            index=True,
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("current_level_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.JSONB, nullable=False),
        sa.Column("updated_by", postgresql.JSONB, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "budget_audit_trail",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "budget_id",
            sa.String(64),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("from_status", sa.String(32), nullable=False),
        sa.Column("to_status", sa.String(32), nullable=False),
        sa.Column("performed_by", postgresql.JSONB, nullable=False),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("details", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.UniqueConstraint("budget_id", "sequence", name="uq_budget_audit_sequence"),
    )


def downgrade() -> None:
    """Drop budget_audit_trail and budgets tables."""
    op.drop_table("budget_audit_trail")
    op.drop_table("budgets")
