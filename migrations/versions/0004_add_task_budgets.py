"""add budget columns to tasks"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004_add_task_budgets"
down_revision = "0003_create_expenses"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("total_budget", sa.Float(), nullable=False, server_default="0"),
    )
    op.add_column(
        "tasks",
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
    )
    op.add_column(
        "tasks",
        sa.Column("budget_alert_thresholds", sa.String(length=100), nullable=False, server_default="80"),
    )


def downgrade() -> None:
    op.drop_column("tasks", "budget_alert_thresholds")
    op.drop_column("tasks", "currency")
    op.drop_column("tasks", "total_budget")
