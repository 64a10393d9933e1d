"""Add storefront lookup tables and affiliate / campaign click tables.

Revision ID: 5c1e9a7b2d40
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "5c1e9a7b2d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(300), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "affiliates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("referral_code", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("total_clicks", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "instagram_campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_code", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("referred_by_affiliate", sa.String(36), nullable=True),
    )
    op.create_table(
        "affiliate_clicks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("affiliate_id", sa.String(36), sa.ForeignKey("affiliates.id"), nullable=False, index=True),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("landing_page", sa.String(2000), nullable=True),
        sa.Column("referrer", sa.String(2000), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index("idx_affiliate_click_report", "affiliate_clicks", ["affiliate_id", "clicked_at"])
    op.create_table(
        "campaign_clicks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("instagram_campaigns.id"), nullable=False, index=True),
        sa.Column("user_id", sa.String(36), nullable=True, index=True),
        sa.Column("product_id", sa.String(36), nullable=True),
        sa.Column("referrer_url", sa.String(2000), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index("idx_campaign_click_report", "campaign_clicks", ["campaign_id", "clicked_at"])


def downgrade() -> None:
    op.drop_index("idx_campaign_click_report", table_name="campaign_clicks")
    op.drop_table("campaign_clicks")
    op.drop_index("idx_affiliate_click_report", table_name="affiliate_clicks")
    op.drop_table("affiliate_clicks")
    op.drop_table("user_profiles")
    op.drop_table("instagram_campaigns")
    op.drop_table("affiliates")
    op.drop_table("products")
