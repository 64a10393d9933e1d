"""Attribution expiry policy.

A stored record is valid while its age, measured in fractional days, is
strictly below the channel's time-to-live. The policy only answers the
question; purging expired records is the caller's job.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from src.models.attribution import SECONDS_PER_DAY, utcnow


class Expiry(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"


def elapsed_days(captured_at: datetime, now: Optional[datetime] = None) -> float:
    now = now or utcnow()
    return (now - captured_at).total_seconds() / SECONDS_PER_DAY


def check_expiry(captured_at: datetime, ttl_days: float, now: Optional[datetime] = None) -> Expiry:
    """Return VALID if ``now - captured_at < ttl_days`` (in days), else EXPIRED."""
    if elapsed_days(captured_at, now) < ttl_days:
        return Expiry.VALID
    return Expiry.EXPIRED


def is_valid(captured_at: datetime, ttl_days: float, now: Optional[datetime] = None) -> bool:
    return check_expiry(captured_at, ttl_days, now) is Expiry.VALID
