"""
Visitor attribution tracking for affiliate referrals and Instagram campaigns.

Runs once per page view (or whenever the query string changes):

  Affiliate referral (``?ref=CODE``)
    - 7-day window, "first referral wins": a valid stored referral is never
      overwritten by a later link and the later link is not logged
    - On /product/:slug the slug is resolved and the product id remembered
      for product-specific commission at order time

  Instagram campaign (``?campaign=CODE``)
    - 3-day window, "last explicit code wins": a different code replaces the
      stored one and is logged; the same code again is a no-op

Expired records are purged before any decision. The store write happens
synchronously inside ``track()``; product resolution and click logging are
scheduled as tasks afterwards, so attribution survives any network failure.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from src.models.attribution import (
    AFFILIATE_POLICY,
    CAMPAIGN_POLICY,
    AttributionRecord,
    Channel,
    ChannelPolicy,
    ClickRequest,
    Visit,
    utcnow,
)
from src.services.attribution_store import AttributionStore
from src.services.click_logger import ClickLogger
from src.services.expiry import Expiry, check_expiry
from src.services.product_resolver import ProductResolver, extract_product_slug

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class TrackOutcome:
    """What one tracker did for one visit."""
    channel: Channel
    record: Optional[AttributionRecord] = None  # active record after this visit
    captured: bool = False
    purged: bool = False
    resolution: Optional[asyncio.Task] = None
    click: Optional[asyncio.Task] = None

    @property
    def tasks(self) -> list[asyncio.Task]:
        return [t for t in (self.resolution, self.click) if t is not None]

    async def settle(self) -> None:
        """Wait for the background work; never raises."""
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)


class ChannelTracker(ABC):
    policy: ChannelPolicy

    def __init__(
        self,
        store: AttributionStore,
        click_logger: ClickLogger,
        resolver: Optional[ProductResolver] = None,
        ttl_days: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.click_logger = click_logger
        self.resolver = resolver or click_logger.resolver
        self.ttl_days = ttl_days if ttl_days is not None else self.policy.ttl_days
        self.clock = clock

    @property
    def channel(self) -> Channel:
        return self.policy.channel

    def load_valid(self, now: datetime) -> tuple[Optional[AttributionRecord], bool]:
        """Stored record if still inside the window; expired ones are purged here."""
        record = self.store.get(self.channel)
        if record is None:
            return None, False
        if check_expiry(record.captured_at, self.ttl_days, now) is Expiry.EXPIRED:
            self.store.clear(self.channel)
            logger.info("Expired %s attribution cleared: %s", self.channel.value, record.code)
            return None, True
        return record, False

    def _capture(self, code: str, now: datetime, outcome: TrackOutcome) -> AttributionRecord:
        record = AttributionRecord(code=code, captured_at=now)
        self.store.set(self.channel, record)
        outcome.record = record
        outcome.captured = True
        logger.info("Captured %s attribution: %s", self.channel.value, code)
        return record

    def _submit_click(
        self,
        code: str,
        visit: Visit,
        product_slug: Optional[str],
        product_lookup: Optional[asyncio.Task] = None,
    ) -> asyncio.Task:
        return self.click_logger.submit(ClickRequest(
            channel=self.channel,
            code=code,
            landing_url=visit.url,
            referrer=visit.referrer,
            user_agent=visit.user_agent,
            product_slug=product_slug,
            user_id=visit.user_id,
        ), product_lookup=product_lookup)

    @abstractmethod
    def track(self, visit: Visit) -> TrackOutcome:
        """Apply this channel's policy to a visit. Call from inside the event loop."""
        ...


class AffiliateReferralTracker(ChannelTracker):
    policy = AFFILIATE_POLICY

    def track(self, visit: Visit) -> TrackOutcome:
        now = self.clock()
        ref = visit.param(self.policy.query_param)
        existing, purged = self.load_valid(now)
        outcome = TrackOutcome(channel=self.channel, record=existing, purged=purged)

        if not ref:
            return outcome
        if existing is not None:
            # First referral wins
            if ref != existing.code:
                logger.debug("Keeping referral %s, ignoring %s", existing.code, ref)
            return outcome

        record = self._capture(ref, now, outcome)
        slug = extract_product_slug(visit.path)
        if slug:
            outcome.resolution = self.click_logger.spawn(self._resolve_and_store(slug, record))
        # The click reuses the lookup above; it is logged whether or not it succeeds
        outcome.click = self._submit_click(ref, visit, slug, product_lookup=outcome.resolution)
        return outcome

    async def _resolve_and_store(self, slug: str, record: AttributionRecord) -> Optional[str]:
        """Look the slug up and tag ``record`` with it. Returns the product id, None on miss or failure."""
        try:
            product_id = await self.resolver.resolve(slug)
        except Exception:
            logger.error("[Affiliate] Error resolving product slug %s", slug, exc_info=True)
            return None
        if product_id is None:
            return None

        current = self.store.get(self.channel)
        # Only annotate the referral this lookup was started for
        if current is None or current.code != record.code or current.captured_at != record.captured_at:
            return product_id
        self.store.set(self.channel, replace(current, resolved_product_id=product_id))
        logger.info("[Affiliate] Product resolved: %s -> %s", slug, product_id)
        return product_id


class InstagramCampaignTracker(ChannelTracker):
    policy = CAMPAIGN_POLICY

    def track(self, visit: Visit) -> TrackOutcome:
        now = self.clock()
        code = visit.param(self.policy.query_param)
        existing, purged = self.load_valid(now)
        outcome = TrackOutcome(channel=self.channel, record=existing, purged=purged)

        # Last explicit code wins; repeating the current one is a no-op
        if not code or (existing is not None and existing.code == code):
            return outcome

        self._capture(code, now, outcome)
        outcome.click = self._submit_click(code, visit, extract_product_slug(visit.path))
        return outcome


# ── Both channels ────────────────────────────────────────────────────────────

TRACKING_PARAMS = (AFFILIATE_POLICY.query_param, CAMPAIGN_POLICY.query_param)


def strip_tracking_params(url: str) -> str:
    """Landing URL without ``ref`` / ``campaign``, for replacing the history entry."""
    parts = urlsplit(url)
    # Other parameters are kept byte-for-byte, not re-encoded
    kept = [
        pair for pair in parts.query.split("&")
        if unquote_plus(pair.partition("=")[0]) not in TRACKING_PARAMS
    ]
    return urlunsplit(parts._replace(query="&".join(kept)))


@dataclass
class VisitOutcome:
    affiliate: TrackOutcome
    campaign: TrackOutcome
    clean_url: str

    @property
    def captured(self) -> list[Channel]:
        return [o.channel for o in (self.affiliate, self.campaign) if o.captured]

    async def wait_for_resolution(self) -> None:
        """Wait only for product-id lookups, leaving clicks in the background."""
        if self.affiliate.resolution is not None:
            await asyncio.gather(self.affiliate.resolution, return_exceptions=True)

    async def settle(self) -> None:
        await asyncio.gather(self.affiliate.settle(), self.campaign.settle())


class AttributionTracker:
    """Runs the affiliate and campaign trackers over one shared store."""

    def __init__(
        self,
        store: AttributionStore,
        click_logger: ClickLogger,
        affiliate_ttl_days: Optional[float] = None,
        campaign_ttl_days: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.affiliate = AffiliateReferralTracker(
            store, click_logger, ttl_days=affiliate_ttl_days, clock=clock,
        )
        self.campaign = InstagramCampaignTracker(
            store, click_logger, ttl_days=campaign_ttl_days, clock=clock,
        )

    def track(self, visit: Visit) -> VisitOutcome:
        affiliate = self.affiliate.track(visit)
        campaign = self.campaign.track(visit)
        return VisitOutcome(
            affiliate=affiliate,
            campaign=campaign,
            clean_url=strip_tracking_params(visit.url),
        )

    def active(self) -> dict[Channel, AttributionRecord]:
        """Records still inside their windows; expired ones are purged."""
        now_active = {}
        for tracker in (self.affiliate, self.campaign):
            record, _ = tracker.load_valid(tracker.clock())
            if record is not None:
                now_active[tracker.channel] = record
        return now_active

    def clear(self, channel: Channel) -> None:
        self.store.clear(channel)
        logger.info("Cleared %s attribution", Channel(channel).value)
