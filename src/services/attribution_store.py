"""
Attribution storage for visitor-level referral and campaign state.

Trackers never touch a global: they are handed an ``AttributionStore``.

- InMemoryAttributionStore — plain dict per channel (tests, workers)
- KeyValueAttributionStore — any string mapping, laid out with the same keys
  the storefront has always used in browser storage
  (``affiliate_referral_code``, ``campaign_time``, ...)
- SignedCookieAttributionStore — a key/value store serialised into one
  HMAC-signed cookie so the API can stay stateless
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import MutableMapping, Optional

from src.models.attribution import CHANNEL_POLICIES, AttributionRecord, Channel, ChannelPolicy

logger = logging.getLogger(__name__)

# Unreadable timestamps load as the epoch so the expiry policy purges them
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class AttributionStore(ABC):
    """At most one record per channel."""

    @abstractmethod
    def get(self, channel: Channel) -> Optional[AttributionRecord]:
        ...

    @abstractmethod
    def set(self, channel: Channel, record: AttributionRecord) -> None:
        ...

    @abstractmethod
    def clear(self, channel: Channel) -> None:
        ...

    def active(self) -> dict[Channel, AttributionRecord]:
        """All stored records, keyed by channel (no expiry check)."""
        records = {}
        for channel in Channel:
            record = self.get(channel)
            if record is not None:
                records[channel] = record
        return records


class InMemoryAttributionStore(AttributionStore):
    def __init__(self):
        self._records: dict[Channel, AttributionRecord] = {}

    def get(self, channel: Channel) -> Optional[AttributionRecord]:
        return self._records.get(channel)

    def set(self, channel: Channel, record: AttributionRecord) -> None:
        self._records[channel] = record

    def clear(self, channel: Channel) -> None:
        self._records.pop(channel, None)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); naive values are UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.warning("Unreadable attribution timestamp: %r", value)
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class KeyValueAttributionStore(AttributionStore):
    """Records flattened into a string mapping under per-channel keys."""

    def __init__(
        self,
        data: Optional[MutableMapping[str, str]] = None,
        policies: Optional[dict[Channel, ChannelPolicy]] = None,
    ):
        self.data: MutableMapping[str, str] = data if data is not None else {}
        self.policies = policies or CHANNEL_POLICIES
        self.changed = False

    def _policy(self, channel: Channel) -> ChannelPolicy:
        return self.policies[Channel(channel)]

    def get(self, channel: Channel) -> Optional[AttributionRecord]:
        policy = self._policy(channel)
        code = self.data.get(policy.code_key)
        stored_time = self.data.get(policy.time_key)
        # A code without a capture time cannot be aged, so it does not count
        if not code or not stored_time:
            return None
        product_id = self.data.get(policy.product_key) if policy.product_key else None
        return AttributionRecord(
            code=code,
            captured_at=parse_timestamp(stored_time),
            resolved_product_id=product_id or None,
        )

    def set(self, channel: Channel, record: AttributionRecord) -> None:
        policy = self._policy(channel)
        self.data[policy.code_key] = record.code
        self.data[policy.time_key] = record.captured_at.isoformat()
        if policy.product_key:
            if record.resolved_product_id:
                self.data[policy.product_key] = record.resolved_product_id
            else:
                self.data.pop(policy.product_key, None)
        self.changed = True

    def clear(self, channel: Channel) -> None:
        policy = self._policy(channel)
        for key in (policy.code_key, policy.time_key, policy.product_key):
            if key and key in self.data:
                del self.data[key]
                self.changed = True


# ── Signed cookie ────────────────────────────────────────────────────────────

def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


class SignedCookieAttributionStore(KeyValueAttributionStore):
    """Key/value attribution state carried in a single signed cookie value.

    Format: ``<base64url(json mapping)>.<hex hmac-sha256>``. Anything that
    fails verification loads as an empty store.
    """

    def __init__(self, signing_key: str, data: Optional[MutableMapping[str, str]] = None):
        super().__init__(data)
        self._key = signing_key.encode()

    def _sign(self, body: str) -> str:
        return hmac.new(self._key, body.encode(), hashlib.sha256).hexdigest()

    @classmethod
    def from_cookie(cls, value: Optional[str], signing_key: str) -> "SignedCookieAttributionStore":
        store = cls(signing_key)
        if not value:
            return store
        body, _, sig = value.rpartition(".")
        # Compare bytes: str compare_digest raises on non-ASCII input
        expected = store._sign(body).encode()
        if not body or not hmac.compare_digest(expected, sig.encode("utf-8", "surrogateescape")):
            logger.warning("Discarding attribution cookie with bad signature")
            return store
        try:
            data = json.loads(_b64url_decode(body))
        except ValueError:
            logger.warning("Discarding malformed attribution cookie")
            return store
        if isinstance(data, dict):
            store.data = {str(k): str(v) for k, v in data.items() if v is not None}
        return store

    def to_cookie(self) -> str:
        body = _b64url(json.dumps(dict(self.data), sort_keys=True, separators=(",", ":")).encode())
        return f"{body}.{self._sign(body)}"

    @property
    def empty(self) -> bool:
        return not self.data
