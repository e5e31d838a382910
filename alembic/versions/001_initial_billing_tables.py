"""initial billing tables: users, billing_customers, billing_subscriptions

Revision ID: 001_initial_billing
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial_billing"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email_address", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email_address", "users", ["email_address"])

    # --- billing_customers ---
    op.create_table(
        "billing_customers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("stripe_customer_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_billing_customers_user_id", "billing_customers", ["user_id"])
    op.create_index(
        "ix_billing_customers_stripe_customer_id",
        "billing_customers",
        ["stripe_customer_id"],
        unique=True,
    )

    # --- billing_subscriptions ---
    op.create_table(
        "billing_subscriptions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "billing_customer_id",
            sa.Integer,
            sa.ForeignKey("billing_customers.id"),
            nullable=False,
        ),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=False),
        sa.Column("stripe_subscription_status", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index(
        "ix_billing_subscriptions_billing_customer_id",
        "billing_subscriptions",
        ["billing_customer_id"],
    )
    op.create_index(
        "ix_billing_subscriptions_stripe_subscription_id",
        "billing_subscriptions",
        ["stripe_subscription_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_table("billing_subscriptions")
    op.drop_table("billing_customers")
    op.drop_table("users")
