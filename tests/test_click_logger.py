"""Tests for best-effort click logging against the SQL backend."""
import pytest
from sqlalchemy import func, select

from src.db.attribution_tables import AffiliateClickRow, CampaignClickRow
from src.db.tables import AffiliateRow, UserProfileRow
from src.models.attribution import Channel, ClickRequest
from src.services.click_logger import ClickLogger, ClickOutcome


def _affiliate(code: str, **kwargs) -> ClickRequest:
    return ClickRequest(channel=Channel.AFFILIATE_REFERRAL, code=code, landing_url="https://shop.example/", **kwargs)


def _campaign(code: str, **kwargs) -> ClickRequest:
    return ClickRequest(channel=Channel.INSTAGRAM_CAMPAIGN, code=code, landing_url="https://shop.example/", **kwargs)


@pytest.mark.asyncio
async def test_affiliate_click_row_written(click_logger, db_session, seed):
    outcome = await click_logger.log(_affiliate(
        "AFF123", product_slug="red-kurti", referrer="https://wa.me/", user_agent="Mozilla/5.0",
    ))
    assert outcome is ClickOutcome.LOGGED

    async with db_session() as session:
        row = (await session.execute(select(AffiliateClickRow))).scalar_one()
        affiliate = await session.get(AffiliateRow, seed["affiliate_id"])
    assert row.affiliate_id == seed["affiliate_id"]
    assert row.product_id == seed["product_id"]
    assert row.landing_page == "https://shop.example/"
    assert row.referrer == "https://wa.me/"
    assert row.user_agent == "Mozilla/5.0"
    assert affiliate.total_clicks == 1


@pytest.mark.asyncio
async def test_campaign_click_row_written(click_logger, db_session, seed):
    outcome = await click_logger.log(_campaign("SPRING24", user_id="user-7"))
    assert outcome is ClickOutcome.LOGGED

    async with db_session() as session:
        row = (await session.execute(select(CampaignClickRow))).scalar_one()
    assert row.campaign_id == seed["campaign_id"]
    assert row.user_id == "user-7"
    assert row.product_id is None
    assert row.referrer_url is None


@pytest.mark.asyncio
@pytest.mark.parametrize("request_", [
    _affiliate("NOPE"),
    _affiliate("DORMANT"),
    _campaign("NOPE"),
    _campaign("WINTER23"),
])
async def test_unknown_or_inactive_codes_abort(click_logger, db_session, request_):
    assert await click_logger.log(request_) is ClickOutcome.UNKNOWN_ENTITY

    async with db_session() as session:
        affiliate_clicks = (await session.execute(select(func.count(AffiliateClickRow.id)))).scalar()
        campaign_clicks = (await session.execute(select(func.count(CampaignClickRow.id)))).scalar()
    assert affiliate_clicks == campaign_clicks == 0


@pytest.mark.asyncio
async def test_profile_link_is_first_wins(click_logger, db_session, seed):
    async with db_session() as session:
        session.add(AffiliateRow(id="second-affiliate", referral_code="AFF777", name="Second"))
        await session.commit()

    await click_logger.log(_affiliate("AFF123", user_id="user-1"))
    await click_logger.log(_affiliate("AFF777", user_id="user-1"))

    async with db_session() as session:
        profile = await session.get(UserProfileRow, "user-1")
    assert profile.referred_by_affiliate == seed["affiliate_id"]


@pytest.mark.asyncio
async def test_submit_is_fire_and_forget(click_logger, db_session):
    task = click_logger.submit(_affiliate("AFF123"))
    assert click_logger.pending == 1

    outcomes = await click_logger.drain()

    assert outcomes == [ClickOutcome.LOGGED]
    assert task.result() is ClickOutcome.LOGGED
    assert click_logger.pending == 0


@pytest.mark.asyncio
async def test_drain_with_nothing_pending(click_logger):
    assert await click_logger.drain() == []


@pytest.mark.asyncio
async def test_failures_reach_error_sink(fake_backend):
    seen = []
    fake_backend.fail_inserts = True
    logger = ClickLogger(fake_backend, error_sink=lambda req, exc: seen.append((req.code, type(exc))))

    outcome = await logger.submit(_campaign("SPRING24"))

    assert outcome is ClickOutcome.FAILED
    assert seen == [("SPRING24", ConnectionError)]


@pytest.mark.asyncio
async def test_default_sink_logs_warning(fake_backend, caplog):
    fake_backend.fail_inserts = True
    logger = ClickLogger(fake_backend)

    with caplog.at_level("WARNING", logger="src.services.click_logger"):
        assert await logger.log(_affiliate("AFF123")) is ClickOutcome.FAILED

    assert "Click log failed for AFF123" in caplog.text


@pytest.mark.asyncio
async def test_counter_failure_does_not_fail_click(fake_backend):
    async def broken(_affiliate_id):
        raise RuntimeError("rpc missing")

    fake_backend.increment_affiliate_clicks = broken
    logger = ClickLogger(fake_backend)

    assert await logger.log(_affiliate("AFF123")) is ClickOutcome.LOGGED
    assert len(fake_backend.affiliate_clicks) == 1


@pytest.mark.asyncio
async def test_product_lookup_outage_logs_click_without_product(fake_backend, caplog):
    fake_backend.fail_product_lookups = True
    logger = ClickLogger(fake_backend)

    with caplog.at_level("WARNING", logger="src.services.click_logger"):
        outcome = await logger.log(_campaign("SPRING24", product_slug="red-kurti"))

    assert outcome is ClickOutcome.LOGGED
    assert fake_backend.campaign_clicks[0].product_id is None
    assert "Product lookup failed for red-kurti" in caplog.text


@pytest.mark.asyncio
async def test_drain_covers_spawned_tasks(fake_backend):
    logger = ClickLogger(fake_backend)

    async def lookup():
        return "prod-1"

    task = logger.spawn(lookup())
    assert logger.pending == 1
    assert await logger.drain() == ["prod-1"]
    assert task.result() == "prod-1"
