"""Storefront Attribution API — FastAPI application."""
from __future__ import annotations

import logging

from src.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.db.engine import engine
from src.db.tables import Base
from config.settings import settings

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Referrers and landing URLs can carry personal data
        send_default_pii=False,
        before_send=lambda event, hint: (
            {**event, "request": {**event.get("request", {}), "cookies": None}}
            if "request" in event else event
        ),
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings, create tables, drain in-flight click logs on shutdown."""
    from src.startup_checks import validate_settings
    validate_settings()

    # Import all tables so they're registered with Base.metadata
    import src.db.attribution_tables  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

    yield

    logger.info("Shutting down — flushing click logs...")
    from src.api.attribution import get_click_logger
    await get_click_logger().drain()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Storefront Attribution API",
    version="0.1.0",
    description="Affiliate referral and Instagram campaign attribution for the storefront",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    # The attribution cookie must travel with cross-origin SPA calls
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

# Request ID tracing
from src.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)


@app.get("/health")
async def health():
    return {"status": "ok"}


# --- Attribution routes ---
from src.api.attribution import router as attribution_router
app.include_router(attribution_router)
