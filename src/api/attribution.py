"""Visitor Attribution API — /api/v1/attribution endpoints.

The storefront SPA calls ``POST /visit`` on every navigation with the full
landing URL. Attribution state lives in a signed cookie, so any instance
can serve any visitor.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from config.settings import settings
from src.auth import get_current_user_id
from src.db import engine as db_engine
from src.db.backend import SqlStorefrontBackend
from src.models.attribution import SECONDS_PER_DAY, AttributionRecord, Channel, Visit
from src.services.attribution_links import (
    build_campaign_link,
    build_referral_link,
    pick_order_attribution,
)
from src.services.attribution_store import SignedCookieAttributionStore
from src.services.attribution_tracker import AttributionTracker
from src.services.click_logger import ClickLogger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/attribution", tags=["attribution"])


# ── Schemas ───────────────────────────────────────────────────────────────────

class VisitRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=4000)
    referrer: str = Field("", max_length=2000)


class AttributionRecordOut(BaseModel):
    code: str
    captured_at: datetime
    resolved_product_id: Optional[str] = None


class AttributionStateResponse(BaseModel):
    affiliate_referral: Optional[AttributionRecordOut] = None
    instagram_campaign: Optional[AttributionRecordOut] = None


class VisitResponse(AttributionStateResponse):
    captured: list[Channel] = []
    clean_url: str


class ShareLinkResponse(BaseModel):
    url: str


class OrderAttributionResponse(BaseModel):
    source: Optional[str] = None
    code: Optional[str] = None
    affiliate_id: Optional[str] = None
    product_id: Optional[str] = None


# ── Dependencies ──────────────────────────────────────────────────────────────

_click_logger: Optional[ClickLogger] = None


def get_click_logger() -> ClickLogger:
    """Process-wide click logger (keeps in-flight click tasks alive)."""
    global _click_logger
    if _click_logger is None:
        _click_logger = ClickLogger(SqlStorefrontBackend(db_engine.async_session))
    return _click_logger


def load_store(request: Request) -> SignedCookieAttributionStore:
    return SignedCookieAttributionStore.from_cookie(
        request.cookies.get(settings.ATTRIBUTION_COOKIE_NAME),
        settings.ATTRIBUTION_SIGNING_KEY,
    )


def _tracker(store: SignedCookieAttributionStore, click_logger: ClickLogger) -> AttributionTracker:
    return AttributionTracker(
        store,
        click_logger,
        affiliate_ttl_days=settings.AFFILIATE_TTL_DAYS,
        campaign_ttl_days=settings.CAMPAIGN_TTL_DAYS,
    )


def _persist(response: Response, store: SignedCookieAttributionStore) -> None:
    """Write the cookie back only if the store changed."""
    if not store.changed:
        return
    if store.empty:
        response.delete_cookie(settings.ATTRIBUTION_COOKIE_NAME, path="/")
        return
    max_age = int(max(settings.AFFILIATE_TTL_DAYS, settings.CAMPAIGN_TTL_DAYS) * SECONDS_PER_DAY)
    response.set_cookie(
        settings.ATTRIBUTION_COOKIE_NAME,
        store.to_cookie(),
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.ATTRIBUTION_COOKIE_SECURE,
        samesite="lax",
    )


def _state(active: dict[Channel, AttributionRecord]) -> dict:
    return {
        channel.value: AttributionRecordOut(**record.to_dict())
        for channel, record in active.items()
    }


def _channel_or_404(channel: str) -> Channel:
    try:
        return Channel(channel)
    except ValueError:
        raise HTTPException(404, f"Unknown attribution channel: {channel}")


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/visit", response_model=VisitResponse)
async def track_visit(
    body: VisitRequest,
    request: Request,
    response: Response,
    user_id: Optional[str] = Depends(get_current_user_id),
    click_logger: ClickLogger = Depends(get_click_logger),
):
    """Apply referral / campaign capture rules to one page view.

    Waits for the product slug lookup so the cookie carries the product id;
    click logging keeps running after the response is sent.
    """
    store = load_store(request)
    tracker = _tracker(store, click_logger)
    visit = Visit(
        url=body.url,
        referrer=body.referrer,
        user_agent=request.headers.get("user-agent", ""),
        user_id=user_id,
    )
    outcome = tracker.track(visit)
    await outcome.wait_for_resolution()

    active = tracker.active()
    _persist(response, store)
    return VisitResponse(**_state(active), captured=outcome.captured, clean_url=outcome.clean_url)


@router.get("", response_model=AttributionStateResponse)
async def get_attribution(
    request: Request,
    response: Response,
    click_logger: ClickLogger = Depends(get_click_logger),
):
    """Active attribution for this visitor (expired records are dropped)."""
    store = load_store(request)
    active = _tracker(store, click_logger).active()
    _persist(response, store)
    return AttributionStateResponse(**_state(active))


@router.delete("/{channel}", response_model=AttributionStateResponse)
async def clear_attribution(
    channel: str,
    request: Request,
    response: Response,
    click_logger: ClickLogger = Depends(get_click_logger),
):
    """Forget one channel's attribution (e.g. after the order was credited)."""
    target = _channel_or_404(channel)
    store = load_store(request)
    tracker = _tracker(store, click_logger)
    tracker.clear(target)
    active = tracker.active()
    _persist(response, store)
    return AttributionStateResponse(**_state(active))


@router.get("/order-source", response_model=OrderAttributionResponse)
async def order_source(
    request: Request,
    response: Response,
    coupon_affiliate_id: Optional[str] = Query(None, max_length=64),
    click_logger: ClickLogger = Depends(get_click_logger),
):
    """Which source an order placed now would be credited to."""
    store = load_store(request)
    active = _tracker(store, click_logger).active()
    _persist(response, store)
    picked = pick_order_attribution(active, coupon_affiliate_id=coupon_affiliate_id)
    if picked is None:
        return OrderAttributionResponse()
    return OrderAttributionResponse(
        source=picked.source,
        code=picked.code,
        affiliate_id=picked.affiliate_id,
        product_id=picked.product_id,
    )


@router.get("/links/referral/{code}", response_model=ShareLinkResponse)
async def referral_link(code: str, slug: Optional[str] = Query(None, max_length=300)):
    """Affiliate share link, optionally deep-linked to a product."""
    return ShareLinkResponse(url=build_referral_link(settings.STOREFRONT_BASE_URL, code, slug))


@router.get("/links/campaign/{code}", response_model=ShareLinkResponse)
async def campaign_link(code: str):
    """Instagram campaign landing link."""
    return ShareLinkResponse(url=build_campaign_link(settings.STOREFRONT_BASE_URL, code))
