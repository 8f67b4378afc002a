"""Users, subscription plans, deals, wallet items and redemption records.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE subscription_tier AS ENUM ('NONE', 'FREE', 'BASIC', 'PREMIUM', 'VIP')")
    op.execute("CREATE TYPE billing_period AS ENUM ('monthly', 'yearly')")
    op.execute("CREATE TYPE wallet_item_status AS ENUM ('active', 'redeemed', 'removed')")

    op.create_table(
        "users",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column(
            "tier",
            sa.Enum(name="subscription_tier", create_type=False),
            nullable=False,
            server_default="NONE",
        ),
        sa.Column("extra_redemptions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subscription_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tier", sa.Enum(name="subscription_tier", create_type=False), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("redemptions_per_period", sa.Integer(), nullable=False),
        sa.Column(
            "billing_period",
            sa.Enum(name="billing_period", create_type=False),
            nullable=False,
            server_default="monthly",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(
        "uq_subscription_plans_active_tier",
        "subscription_plans",
        ["tier"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "deals",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("vendor", sa.String(), nullable=True),
        sa.Column(
            "required_tier",
            sa.Enum(name="subscription_tier", create_type=False),
            nullable=False,
            server_default="FREE",
        ),
        sa.Column("max_redemptions_total", sa.Integer(), nullable=True),
        sa.Column("max_user_redemptions", sa.Integer(), nullable=True),
        sa.Column("is_sold_out", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "max_redemptions_total IS NULL OR max_redemptions_total > 0",
            name="ck_deals_max_redemptions_total_positive",
        ),
        sa.CheckConstraint(
            "max_user_redemptions IS NULL OR max_user_redemptions > 0",
            name="ck_deals_max_user_redemptions_positive",
        ),
    )

    op.create_table(
        "wallet_items",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("deal_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(name="wallet_item_status", create_type=False),
            nullable=False,
            server_default="active",
        ),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="CASCADE"),
    )
    # At most one active claim per user and deal; concurrent claims lose on this index
    op.create_index(
        "uq_wallet_items_active_claim",
        "wallet_items",
        ["user_id", "deal_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index("ix_wallet_items_user_status", "wallet_items", ["user_id", "status"])

    op.create_table(
        "redemption_records",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("deal_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("wallet_item_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("redemption_style", sa.String(length=16), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wallet_item_id"], ["wallet_items.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_redemption_records_deal", "redemption_records", ["deal_id"])
    op.create_index("ix_redemption_records_user_deal", "redemption_records", ["user_id", "deal_id"])
    op.create_index(
        "uq_redemption_records_wallet_item",
        "redemption_records",
        ["wallet_item_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("uq_redemption_records_wallet_item", table_name="redemption_records")
    op.drop_index("ix_redemption_records_user_deal", table_name="redemption_records")
    op.drop_index("ix_redemption_records_deal", table_name="redemption_records")
    op.drop_table("redemption_records")

    op.drop_index("ix_wallet_items_user_status", table_name="wallet_items")
    op.drop_index("uq_wallet_items_active_claim", table_name="wallet_items")
    op.drop_table("wallet_items")

    op.drop_table("deals")

    op.drop_index("uq_subscription_plans_active_tier", table_name="subscription_plans")
    op.drop_table("subscription_plans")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.execute("DROP TYPE wallet_item_status")
    op.execute("DROP TYPE billing_period")
    op.execute("DROP TYPE subscription_tier")
