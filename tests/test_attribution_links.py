"""Tests for share links and order-time attribution priority."""
from datetime import datetime, timezone

from src.models.attribution import AttributionRecord, Channel
from src.services.attribution_links import (
    build_campaign_link,
    build_referral_link,
    pick_order_attribution,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class TestShareLinks:
    def test_general_referral_link(self):
        assert build_referral_link("https://shop.example", "AFF123") == "https://shop.example?ref=AFF123"

    def test_product_referral_link(self):
        link = build_referral_link("https://shop.example/", "AFF123", "red-kurti")
        assert link == "https://shop.example/product/red-kurti?ref=AFF123"

    def test_campaign_link(self):
        assert build_campaign_link("https://shop.example", "SPRING24") == "https://shop.example/?campaign=SPRING24"

    def test_codes_are_escaped(self):
        assert build_campaign_link("", "A&B") == "/?campaign=A%26B"


class TestOrderPriority:
    referral = AttributionRecord("AFF123", NOW, "prod-1")
    campaign = AttributionRecord("SPRING24", NOW)

    def test_coupon_beats_everything(self):
        active = {Channel.AFFILIATE_REFERRAL: self.referral, Channel.INSTAGRAM_CAMPAIGN: self.campaign}
        picked = pick_order_attribution(active, coupon_affiliate_id="aff-coupon")
        assert picked.source == "affiliate_coupon"
        assert picked.affiliate_id == "aff-coupon"

    def test_referral_beats_campaign(self):
        active = {Channel.AFFILIATE_REFERRAL: self.referral, Channel.INSTAGRAM_CAMPAIGN: self.campaign}
        picked = pick_order_attribution(active)
        assert picked.source == "affiliate_referral"
        assert picked.code == "AFF123"
        assert picked.product_id == "prod-1"

    def test_campaign_alone(self):
        picked = pick_order_attribution({Channel.INSTAGRAM_CAMPAIGN: self.campaign})
        assert picked.source == "instagram_campaign"
        assert picked.code == "SPRING24"

    def test_nothing_active(self):
        assert pick_order_attribution({}) is None
