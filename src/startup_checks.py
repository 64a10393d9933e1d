"""Startup validation — catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging
import sys

from config.settings import settings

logger = logging.getLogger(__name__)

_DEV_JWT_SECRET = "storefront-dev-secret-change-in-prod"
_DEV_SIGNING_KEY = "storefront-dev-attribution-key-change-in-prod"


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good).

    Raises SystemExit for critical misconfigurations in production.
    """
    warnings: list[str] = []
    is_prod = settings.DATABASE_URL and "sqlite" not in settings.DATABASE_URL

    # Critical: default secrets would let anyone forge tokens or attribution cookies
    if is_prod and settings.JWT_SECRET == _DEV_JWT_SECRET:
        logger.critical("JWT_SECRET is still the default! Set a real secret for production.")
        sys.exit(1)
    if is_prod and settings.ATTRIBUTION_SIGNING_KEY == _DEV_SIGNING_KEY:
        logger.critical("ATTRIBUTION_SIGNING_KEY is still the default! Set a real key for production.")
        sys.exit(1)

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to * — restrict in production (cookies are not sent cross-origin)")

    if is_prod and not settings.ATTRIBUTION_COOKIE_SECURE:
        warnings.append("ATTRIBUTION_COOKIE_SECURE is off — attribution cookie will be sent over plain HTTP")

    if not settings.STOREFRONT_BASE_URL:
        warnings.append("STOREFRONT_BASE_URL not set — share links will be relative")

    if settings.AFFILIATE_TTL_DAYS <= 0 or settings.CAMPAIGN_TTL_DAYS <= 0:
        warnings.append("Attribution TTL is not positive — every stored code expires immediately")

    for w in warnings:
        logger.warning("%s", w)

    if not warnings:
        logger.info("All startup checks passed")

    return warnings
