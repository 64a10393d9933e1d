"""SQLAlchemy ORM models for the storefront tables the attribution service reads."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(300), nullable=False, unique=True, index=True)  # URL segment: /product/{slug}
    name = Column(String(500), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class AffiliateRow(Base):
    __tablename__ = "affiliates"

    id = Column(String(36), primary_key=True, default=_uuid)
    referral_code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(16), default="active", nullable=False)  # active | inactive
    total_clicks = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class InstagramCampaignRow(Base):
    __tablename__ = "instagram_campaigns"

    id = Column(String(36), primary_key=True, default=_uuid)
    campaign_code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String(36), primary_key=True)
    referred_by_affiliate = Column(String(36), nullable=True)  # set once, never overwritten
