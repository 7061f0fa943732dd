"""initial schema

Revision ID: 202410180900
Revises:
Create Date: 2024-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410180900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(length=120)),
        sa.Column("email", sa.String(length=254)),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column("monthly_budget_warning_cents", sa.Integer()),
        sa.Column("monthly_budget_critical_cents", sa.Integer()),
        sa.Column(
            "email_notifications", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_profiles_user_id"),
    )

    op.create_table(
        "recurring_transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("transaction_type", TRANSACTION_TYPE, nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "daily",
                "weekly",
                "biweekly",
                "monthly",
                "quarterly",
                "yearly",
                name="frequency",
            ),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_recurring_transactions_amount_positive"
        ),
        sa.CheckConstraint(
            "next_due_date >= start_date",
            name="ck_recurring_transactions_next_due_after_start",
        ),
    )
    op.create_index(
        "ix_recurring_user_next_due",
        "recurring_transactions",
        ["user_id", "next_due_date"],
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("transaction_type", TRANSACTION_TYPE, nullable=False),
        sa.Column("transaction_date", sa.Date()),
        sa.Column(
            "origin_rule_id",
            sa.String(length=36),
            sa.ForeignKey(
                "recurring_transactions.id",
                name="fk_expenses_origin_rule_id_recurring_transactions",
                ondelete="SET NULL",
            ),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "transaction_date"])
    op.create_index(
        "ix_expenses_user_type_date",
        "expenses",
        ["user_id", "transaction_type", "transaction_date"],
    )

    op.create_table(
        "savings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("goal_name", sa.String(length=120), nullable=False),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column("saved_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_date", sa.Date()),
        sa.Column(
            "priority",
            sa.Enum("High", "Medium", "Low", name="goalpriority"),
            nullable=False,
            server_default="Medium",
        ),
        sa.Column("description", sa.Text()),
        sa.Column(
            "last_notified_milestone", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.CheckConstraint("target_amount_cents > 0", name="ck_savings_target_positive"),
        sa.CheckConstraint("saved_amount_cents >= 0", name="ck_savings_saved_non_negative"),
    )

    op.create_table(
        "goal_contributions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "goal_id",
            sa.String(length=36),
            sa.ForeignKey(
                "savings.id",
                name="fk_goal_contributions_goal_id_savings",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("contribution_date", sa.Date(), nullable=False),
        sa.Column("note", sa.String(length=200)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_goal_contributions_amount_positive"
        ),
    )
    op.create_index(
        "ix_goal_contributions_goal_date",
        "goal_contributions",
        ["goal_id", "contribution_date"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("info", "success", "warning", "error", name="notificationtype"),
            nullable=False,
            server_default="info",
        ),
        sa.Column("action_url", sa.String(length=200)),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dedupe_key", sa.String(length=120)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_notifications_user_dedupe",
        "notifications",
        ["user_id", "dedupe_key"],
        unique=True,
    )


def downgrade():
    op.drop_index("ix_notifications_user_dedupe", table_name="notifications")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_goal_contributions_goal_date", table_name="goal_contributions")
    op.drop_table("goal_contributions")
    op.drop_table("savings")
    op.drop_index("ix_expenses_user_type_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_recurring_user_next_due", table_name="recurring_transactions")
    op.drop_table("recurring_transactions")
    op.drop_table("profiles")
    sa.Enum(name="notificationtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="goalpriority").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="frequency").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)
