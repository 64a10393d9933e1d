"""Shared test fixtures — one temp-file SQLite DB, seeded storefront rows, fake backend."""
from __future__ import annotations

import os
import tempfile
import uuid
from collections import defaultdict
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# NullPool + a file DB: fire-and-forget click tasks each get their own connection
from sqlalchemy.pool import NullPool

from src.db.backend import SqlStorefrontBackend, StorefrontBackend
from src.db.tables import AffiliateRow, Base, InstagramCampaignRow, ProductRow
from src.models.attribution import ClickEvent, ClickRequest, EntityRef
from src.services.click_logger import ClickLogger

TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"storefront-test-{uuid.uuid4().hex}.db")
TEST_DB_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=NullPool)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)

SEED = {
    "product_id": "8f14e45f-ceea-4e7a-9c3b-2d1f0a6b7c11",
    "product_slug": "red-kurti",
    "affiliate_id": "0b6c7d3e-4a1f-4f55-9d8e-aff123000001",
    "affiliate_code": "AFF123",
    "inactive_affiliate_code": "DORMANT",
    "campaign_id": "5e2d9c4b-7f3a-4b8e-a1c6-3c5d1f2a0b41",
    "campaign_code": "SPRING24",
    "other_campaign_id": "9a8b7c6d-5e4f-4a3b-b2c1-7e0f4d9c2a55",
    "other_campaign_code": "SUMMER25",
    "inactive_campaign_code": "WINTER23",
}

# Import app and override BEFORE any test module imports app
from src.api.main import app  # noqa: E402
from src.api.attribution import get_click_logger  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after. Seeds products, affiliates, campaigns."""
    import src.db.attribution_tables  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSession() as session:
        session.add_all([
            ProductRow(id=SEED["product_id"], slug=SEED["product_slug"], name="Red Cotton Kurti"),
            AffiliateRow(id=SEED["affiliate_id"], referral_code=SEED["affiliate_code"], name="Asha Styles"),
            AffiliateRow(referral_code=SEED["inactive_affiliate_code"], name="Old Partner", status="inactive"),
            InstagramCampaignRow(id=SEED["campaign_id"], campaign_code=SEED["campaign_code"], name="Spring drop"),
            InstagramCampaignRow(
                id=SEED["other_campaign_id"], campaign_code=SEED["other_campaign_code"], name="Summer reels",
            ),
            InstagramCampaignRow(campaign_code=SEED["inactive_campaign_code"], name="Winter sale", is_active=False),
        ])
        await session.commit()

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def pytest_sessionfinish(session, exitstatus):
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture
def seed() -> dict:
    return dict(SEED)


@pytest.fixture
def db_session():
    """Session factory for asserting on rows written by click tasks."""
    return TestSession


@pytest.fixture
def sql_backend() -> SqlStorefrontBackend:
    return SqlStorefrontBackend(TestSession)


@pytest.fixture
def click_logger(sql_backend) -> ClickLogger:
    return ClickLogger(sql_backend)


@pytest_asyncio.fixture
async def client(click_logger):
    app.dependency_overrides[get_click_logger] = lambda: click_logger
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await click_logger.drain()
    app.dependency_overrides.pop(get_click_logger, None)


# ── Fake backend ─────────────────────────────────────────────────────────────

class FakeBackend(StorefrontBackend):
    """In-memory storefront that records every call and can simulate outages."""

    def __init__(self):
        self.products: dict[str, str] = {"red-kurti": SEED["product_id"]}
        self.affiliates: dict[str, EntityRef] = {
            "AFF123": EntityRef(id="aff-1", active=True),
            "AFF999": EntityRef(id="aff-9", active=True),
            "DORMANT": EntityRef(id="aff-0", active=False),
        }
        self.campaigns: dict[str, EntityRef] = {
            "SPRING24": EntityRef(id="camp-1", active=True),
            "SUMMER25": EntityRef(id="camp-2", active=True),
            "WINTER23": EntityRef(id="camp-0", active=False),
        }
        self.fail_inserts = False
        self.fail_product_lookups = False
        self.product_lookups: list[str] = []
        self.affiliate_clicks: list[ClickEvent] = []
        self.campaign_clicks: list[ClickEvent] = []
        self.click_counts: dict[str, int] = defaultdict(int)
        self.profile_links: dict[str, str] = {}

    async def lookup_product_by_slug(self, slug: str) -> Optional[str]:
        self.product_lookups.append(slug)
        if self.fail_product_lookups:
            raise ConnectionError("network unreachable")
        return self.products.get(slug)

    async def lookup_affiliate_by_code(self, code: str) -> Optional[EntityRef]:
        return self.affiliates.get(code)

    async def lookup_campaign_by_code(self, code: str) -> Optional[EntityRef]:
        return self.campaigns.get(code)

    async def insert_affiliate_click(self, event: ClickEvent) -> None:
        if self.fail_inserts:
            raise ConnectionError('relation "affiliate_clicks" does not exist')
        self.affiliate_clicks.append(event)

    async def insert_campaign_click(self, event: ClickEvent) -> None:
        if self.fail_inserts:
            raise ConnectionError('relation "campaign_clicks" does not exist')
        self.campaign_clicks.append(event)

    async def increment_affiliate_clicks(self, affiliate_id: str) -> None:
        self.click_counts[affiliate_id] += 1

    async def link_user_to_affiliate(self, user_id: str, affiliate_id: str) -> bool:
        if user_id in self.profile_links:
            return False
        self.profile_links[user_id] = affiliate_id
        return True


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def click_errors() -> list[tuple[ClickRequest, BaseException]]:
    return []


@pytest.fixture
def fake_click_logger(fake_backend, click_errors) -> ClickLogger:
    return ClickLogger(fake_backend, error_sink=lambda req, exc: click_errors.append((req, exc)))
