"""
Database tables for affiliate and campaign click tracking.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from src.db.tables import Base


class AffiliateClickRow(Base):
    """One row per referral visit that captured a new affiliate code."""
    __tablename__ = "affiliate_clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=True)  # resolved from /product/:slug, if any
    landing_page = Column(String(2000), nullable=True)
    referrer = Column(String(2000), nullable=True)
    user_agent = Column(String(500), nullable=True)
    clicked_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    __table_args__ = (
        Index("idx_affiliate_click_report", "affiliate_id", "clicked_at"),
    )


class CampaignClickRow(Base):
    """One row per visit that switched the visitor to a new Instagram campaign."""
    __tablename__ = "campaign_clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String(36), ForeignKey("instagram_campaigns.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    product_id = Column(String(36), nullable=True)
    referrer_url = Column(String(2000), nullable=True)
    user_agent = Column(String(500), nullable=True)
    clicked_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    __table_args__ = (
        Index("idx_campaign_click_report", "campaign_id", "clicked_at"),
    )
