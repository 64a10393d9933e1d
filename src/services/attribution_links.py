"""Share links for affiliates / campaigns and order-time attribution priority."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

from src.models.attribution import AttributionRecord, Channel


def _origin(base_url: str) -> str:
    return (base_url or "").rstrip("/")


def build_referral_link(base_url: str, referral_code: str, product_slug: Optional[str] = None) -> str:
    """``{base}/product/{slug}?ref=CODE`` for a product, ``{base}?ref=CODE`` otherwise."""
    query = urlencode({"ref": referral_code})
    if product_slug:
        return f"{_origin(base_url)}/product/{quote(product_slug)}?{query}"
    return f"{_origin(base_url)}?{query}"


def build_campaign_link(base_url: str, campaign_code: str) -> str:
    return f"{_origin(base_url)}/?{urlencode({'campaign': campaign_code})}"


# ── Order-time priority ──────────────────────────────────────────────────────
# Affiliate coupon > referral link > Instagram campaign.

@dataclass(frozen=True)
class OrderAttribution:
    source: str                   # "affiliate_coupon" | "affiliate_referral" | "instagram_campaign"
    code: Optional[str] = None
    affiliate_id: Optional[str] = None
    product_id: Optional[str] = None


def pick_order_attribution(
    active: dict[Channel, AttributionRecord],
    coupon_affiliate_id: Optional[str] = None,
) -> Optional[OrderAttribution]:
    """Choose which single source an order is credited to.

    ``active`` must already be expiry-filtered (see ``AttributionTracker.active``).
    Commission amounts are the order service's business, not ours.
    """
    if coupon_affiliate_id:
        return OrderAttribution(source="affiliate_coupon", affiliate_id=coupon_affiliate_id)
    referral = active.get(Channel.AFFILIATE_REFERRAL)
    if referral is not None:
        return OrderAttribution(
            source=Channel.AFFILIATE_REFERRAL.value,
            code=referral.code,
            product_id=referral.resolved_product_id,
        )
    campaign = active.get(Channel.INSTAGRAM_CAMPAIGN)
    if campaign is not None:
        return OrderAttribution(source=Channel.INSTAGRAM_CAMPAIGN.value, code=campaign.code)
    return None
