"""App settings — loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///storefront.db")

    # Auth (access tokens are issued by the storefront's auth provider)
    JWT_SECRET = os.getenv("JWT_SECRET", "storefront-dev-secret-change-in-prod")

    # Public storefront origin (for referral / campaign share links)
    STOREFRONT_BASE_URL = os.getenv("STOREFRONT_BASE_URL", "")

    # Attribution cookie signing (tamper-proof visitor attribution state)
    ATTRIBUTION_SIGNING_KEY = os.getenv(
        "ATTRIBUTION_SIGNING_KEY",
        "storefront-dev-attribution-key-change-in-prod"
    )
    ATTRIBUTION_COOKIE_NAME = os.getenv("ATTRIBUTION_COOKIE_NAME", "sf_attribution")
    ATTRIBUTION_COOKIE_SECURE = os.getenv("ATTRIBUTION_COOKIE_SECURE", "false").lower() == "true"

    # Attribution windows (days)
    AFFILIATE_TTL_DAYS = float(os.getenv("AFFILIATE_TTL_DAYS", "7"))
    CAMPAIGN_TTL_DAYS = float(os.getenv("CAMPAIGN_TTL_DAYS", "3"))

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
