"""initial schema

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column(
            "type",
            sa.Enum("income", "expense", name="transactiontype"),
            nullable=False,
        ),
        sa.Column("color", sa.String(length=7)),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column(
            "initial_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_account_user_name"),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_tag_user_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "type",
            sa.Enum("income", "expense", name="transactiontype"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("paid_date", sa.Date()),
        sa.Column(
            "status",
            sa.Enum("pending", "paid", "overdue", name="transactionstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("start_date", sa.Date()),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("is_fixed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("installments", sa.Integer()),
        sa.Column("end_date", sa.Date()),
        sa.Column(
            "cancelled_occurrences", sa.JSON(), nullable=False, server_default="[]"
        ),
        sa.Column(
            "is_override", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("override_for_date", sa.Date()),
        sa.Column(
            "parent_transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "parent_transaction_id",
            "override_for_date",
            name="uq_txn_parent_override_date",
        ),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "day_of_month IS NULL OR (day_of_month BETWEEN 1 AND 31)",
            name="ck_transactions_day_of_month",
        ),
        sa.CheckConstraint(
            "NOT (is_fixed AND installments IS NOT NULL AND installments > 1)",
            name="ck_transactions_fixed_or_installments",
        ),
    )
    op.create_index(
        "ix_transactions_user_due_date", "transactions", ["user_id", "due_date"]
    )
    op.create_index(
        "ix_transactions_parent",
        "transactions",
        ["parent_transaction_id", "override_for_date"],
    )

    op.create_table(
        "transaction_tags",
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            primary_key=True,
        ),
        sa.Column("tag_id", sa.Integer(), sa.ForeignKey("tags.id"), primary_key=True),
    )


def downgrade():
    op.drop_table("transaction_tags")
    op.drop_index("ix_transactions_parent", table_name="transactions")
    op.drop_index("ix_transactions_user_due_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("tags")
    op.drop_table("accounts")
    op.drop_table("categories")
