"""Attribution data models — channels, stored records, visits and click events."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlsplit

SECONDS_PER_DAY = 86400


class Channel(str, Enum):
    AFFILIATE_REFERRAL = "affiliate_referral"
    INSTAGRAM_CAMPAIGN = "instagram_campaign"


@dataclass(frozen=True)
class ChannelPolicy:
    """How one channel is captured and where its record lives in key/value storage."""
    channel: Channel
    query_param: str             # URL parameter that carries the code
    ttl_days: float
    code_key: str
    time_key: str
    product_key: Optional[str] = None  # only channels that remember product context


AFFILIATE_POLICY = ChannelPolicy(
    channel=Channel.AFFILIATE_REFERRAL,
    query_param="ref",
    ttl_days=7,
    code_key="affiliate_referral_code",
    time_key="affiliate_referral_time",
    product_key="affiliate_ref_product_id",
)

CAMPAIGN_POLICY = ChannelPolicy(
    channel=Channel.INSTAGRAM_CAMPAIGN,
    query_param="campaign",
    ttl_days=3,
    code_key="campaign_code",
    time_key="campaign_time",
)

CHANNEL_POLICIES: dict[Channel, ChannelPolicy] = {
    Channel.AFFILIATE_REFERRAL: AFFILIATE_POLICY,
    Channel.INSTAGRAM_CAMPAIGN: CAMPAIGN_POLICY,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AttributionRecord:
    """The active attribution for one channel of one visitor."""
    code: str
    captured_at: datetime
    resolved_product_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "captured_at": self.captured_at.isoformat(),
            "resolved_product_id": self.resolved_product_id,
        }


@dataclass(frozen=True)
class Visit:
    """One page view as seen by the trackers."""
    url: str
    referrer: str = ""
    user_agent: str = ""
    user_id: Optional[str] = None

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    def param(self, name: str) -> Optional[str]:
        """First non-empty value of a query parameter, or None."""
        values = parse_qs(urlsplit(self.url).query).get(name)
        if not values or not values[0]:
            return None
        return values[0]


@dataclass(frozen=True)
class EntityRef:
    """An affiliate or campaign as returned by a code lookup."""
    id: str
    active: bool


@dataclass(frozen=True)
class ClickRequest:
    """Everything the click logger needs to record one visit against a channel entity."""
    channel: Channel
    code: str
    landing_url: str
    referrer: str = ""
    user_agent: str = ""
    product_slug: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ClickEvent:
    """Outbound click row — resolved ids plus request metadata."""
    entity_id: str
    landing_url: str
    referrer: str = ""
    user_agent: str = ""
    product_id: Optional[str] = None
    user_id: Optional[str] = None
    clicked_at: datetime = field(default_factory=utcnow)
