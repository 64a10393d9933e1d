"""Storefront backend contract + SQLAlchemy implementation.

The trackers only ever talk to the storefront through these operations:
slug/code point lookups and click inserts. Each SQL call opens its own
session because click logging runs after the originating request is gone.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.attribution_tables import AffiliateClickRow, CampaignClickRow
from src.db.tables import AffiliateRow, InstagramCampaignRow, ProductRow, UserProfileRow
from src.models.attribution import ClickEvent, EntityRef

logger = logging.getLogger(__name__)


class StorefrontBackend(ABC):
    """Logical operations the attribution slice needs from the storefront."""

    @abstractmethod
    async def lookup_product_by_slug(self, slug: str) -> Optional[str]:
        ...

    @abstractmethod
    async def lookup_affiliate_by_code(self, code: str) -> Optional[EntityRef]:
        ...

    @abstractmethod
    async def lookup_campaign_by_code(self, code: str) -> Optional[EntityRef]:
        ...

    @abstractmethod
    async def insert_affiliate_click(self, event: ClickEvent) -> None:
        """Raises on failure; callers treat that as non-fatal."""
        ...

    @abstractmethod
    async def insert_campaign_click(self, event: ClickEvent) -> None:
        ...

    async def increment_affiliate_clicks(self, affiliate_id: str) -> None:
        """Bump the affiliate's running click counter (optional capability)."""

    async def link_user_to_affiliate(self, user_id: str, affiliate_id: str) -> bool:
        """Record who referred a user, first referral wins. Returns True if linked."""
        return False


class SqlStorefrontBackend(StorefrontBackend):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def lookup_product_by_slug(self, slug: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProductRow.id).where(ProductRow.slug == slug).limit(1)
            )
            return result.scalar_one_or_none()

    async def lookup_affiliate_by_code(self, code: str) -> Optional[EntityRef]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AffiliateRow.id, AffiliateRow.status)
                .where(AffiliateRow.referral_code == code)
                .limit(1)
            )
            row = result.first()
        if row is None:
            return None
        return EntityRef(id=row.id, active=row.status == "active")

    async def lookup_campaign_by_code(self, code: str) -> Optional[EntityRef]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InstagramCampaignRow.id, InstagramCampaignRow.is_active)
                .where(InstagramCampaignRow.campaign_code == code)
                .limit(1)
            )
            row = result.first()
        if row is None:
            return None
        return EntityRef(id=row.id, active=bool(row.is_active))

    async def insert_affiliate_click(self, event: ClickEvent) -> None:
        async with self.session_factory() as session:
            session.add(AffiliateClickRow(
                affiliate_id=event.entity_id,
                product_id=event.product_id,
                landing_page=event.landing_url,
                referrer=event.referrer or None,
                user_agent=(event.user_agent or "")[:500] or None,
                clicked_at=event.clicked_at,
            ))
            await session.commit()

    async def insert_campaign_click(self, event: ClickEvent) -> None:
        async with self.session_factory() as session:
            session.add(CampaignClickRow(
                campaign_id=event.entity_id,
                user_id=event.user_id,
                product_id=event.product_id,
                referrer_url=event.referrer or None,
                user_agent=(event.user_agent or "")[:500] or None,
                clicked_at=event.clicked_at,
            ))
            await session.commit()

    async def increment_affiliate_clicks(self, affiliate_id: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(AffiliateRow)
                .where(AffiliateRow.id == affiliate_id)
                .values(total_clicks=AffiliateRow.total_clicks + 1)
            )
            await session.commit()

    async def link_user_to_affiliate(self, user_id: str, affiliate_id: str) -> bool:
        async with self.session_factory() as session:
            profile = await session.get(UserProfileRow, user_id)
            if profile is None:
                session.add(UserProfileRow(user_id=user_id, referred_by_affiliate=affiliate_id))
            elif profile.referred_by_affiliate:
                return False
            else:
                profile.referred_by_affiliate = affiliate_id
            await session.commit()
        logger.info("Linked user %s to affiliate %s", user_id, affiliate_id)
        return True
