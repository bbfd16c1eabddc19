"""initial ledger schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False, unique=True),
        sa.Column("password", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text()),
        sa.Column("balance", sa.Float(precision=53), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "groups",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "group_members",
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("payer_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Float(precision=53), nullable=False),
        sa.Column("category", sa.Text(), nullable=False, server_default="other"),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="expenses_amount_positive"),
    )

    op.create_table(
        "expense_assigned_users",
        sa.Column("expense_id", sa.BigInteger(), sa.ForeignKey("expenses.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "requests",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("amount", sa.Float(precision=53), nullable=False),
        sa.Column("is_fulfilled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expense_id", sa.BigInteger(), sa.ForeignKey("expenses.id", ondelete="CASCADE")),
        sa.Column("debtor_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("debtee_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id")),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="requests_amount_positive"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Float(precision=53), nullable=False),
        sa.Column("debtor_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("debtee_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id")),
        sa.Column("request_id", sa.BigInteger(), sa.ForeignKey("requests.id"), unique=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="payments_amount_positive"),
    )

    op.create_index("idx_group_members_user", "group_members", ["user_id"])
    op.create_index("idx_expenses_group", "expenses", ["group_id"])
    op.create_index("idx_requests_expense", "requests", ["expense_id"])
    op.create_index("idx_requests_debtor", "requests", ["debtor_id", "is_fulfilled"])
    op.create_index("idx_requests_debtee", "requests", ["debtee_id"])
    op.create_index("idx_payments_debtor", "payments", ["debtor_id"])
    op.create_index("idx_payments_debtee", "payments", ["debtee_id"])


def downgrade() -> None:
    op.drop_index("idx_payments_debtee", table_name="payments")
    op.drop_index("idx_payments_debtor", table_name="payments")
    op.drop_index("idx_requests_debtee", table_name="requests")
    op.drop_index("idx_requests_debtor", table_name="requests")
    op.drop_index("idx_requests_expense", table_name="requests")
    op.drop_index("idx_expenses_group", table_name="expenses")
    op.drop_index("idx_group_members_user", table_name="group_members")

    op.drop_table("payments")
    op.drop_table("requests")
    op.drop_table("expense_assigned_users")
    op.drop_table("expenses")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("users")
