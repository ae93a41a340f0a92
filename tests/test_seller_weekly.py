from datetime import datetime, timedelta, timezone

from conftest import BrokenTables
from jobctl.analytics import get_seller_weekly_analytics
from jobctl.handlers import notify_seller_weekly_analytics
from jobctl.models import SellerWeeklyAnalyticsPayload
from jobctl.notify import SELLER_WEEKLY_ANALYTICS
from jobctl.utils import previous_week_window

WEEK_START = datetime(2025, 6, 2, tzinfo=timezone.utc)
WEEK_END = datetime(2025, 6, 9, tzinfo=timezone.utc)
IN_WEEK = WEEK_START + timedelta(days=2, hours=10)


def test_previous_week_window():
    # Wednesday, Monday and Sunday of the same week map to the same window
    for ref in (datetime(2025, 6, 11, 9, tzinfo=timezone.utc),
                datetime(2025, 6, 9, 0, tzinfo=timezone.utc),
                datetime(2025, 6, 15, 23, 59, tzinfo=timezone.utc)):
        assert previous_week_window(ref) == (WEEK_START, WEEK_END)


async def _seed_owner_with_activity(seed, owner="owner-1"):
    await seed.user(owner, display_name="Sam")
    await seed.sale(f"{owner}-sale", owner_id=owner, title="Garage Sale")
    await seed.event(f"{owner}-v1", f"{owner}-sale", owner, "view", IN_WEEK)
    await seed.event(f"{owner}-v2", f"{owner}-sale", owner, "view", IN_WEEK)
    await seed.event(f"{owner}-s1", f"{owner}-sale", owner, "favorite", IN_WEEK)
    await seed.event(f"{owner}-c1", f"{owner}-sale", owner, "click", IN_WEEK)


async def test_sends_summary_to_active_seller(ctx, seed, sender):
    await _seed_owner_with_activity(seed)
    await seed.event("late", "owner-1-sale", "owner-1", "view", WEEK_END)
    await seed.event("fake", "owner-1-sale", "owner-1", "view", IN_WEEK, is_test=True)

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert result.success
    assert result.stats == {"emails_sent": 1, "errors": 0, "skipped": 0}
    [(to, template, data)] = sender.sent
    assert to == "owner-1@example.com"
    assert template == SELLER_WEEKLY_ANALYTICS
    assert (data["total_views"], data["total_saves"], data["total_clicks"]) == (2, 1, 1)
    assert data["week_start"] == "Mon, Jun 2"
    assert data["week_end"] == "Sun, Jun 8"
    assert data["top_sales"] == [{"title": "Garage Sale", "views": 2, "saves": 1, "clicks": 1, "ctr": 50.0}]
    assert data["dashboard_url"] == "https://example.test/dashboard"


async def test_zero_metric_owner_gets_no_email(ctx, seed, sender):
    await seed.user("owner-1")
    await seed.sale("fresh", owner_id="owner-1", created_at=IN_WEEK)

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert result.success
    assert result.stats["skipped"] == 1
    assert sender.sent == []


async def test_reference_date_selects_week(ctx, seed, sender):
    await _seed_owner_with_activity(seed)

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(date="2025-06-30"), ctx)

    assert result.success
    assert sender.sent == []


async def test_opted_out_owner_is_skipped(ctx, seed, sender):
    await _seed_owner_with_activity(seed)
    await ctx.db.update("profiles", {"email_seller_weekly_enabled": False}, eq={"id": "owner-1"})

    await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert sender.sent == []


async def test_preference_lookup_failure_fails_open(ctx, seed, db, sender):
    await _seed_owner_with_activity(seed)
    await db.update("profiles", {"email_seller_weekly_enabled": False}, eq={"id": "owner-1"})
    ctx.db = BrokenTables(db, {"profiles"})

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert result.success
    assert [to for to, _, _ in sender.sent] == ["owner-1@example.com"]


async def test_one_owners_failure_is_isolated(ctx, seed, sender):
    await _seed_owner_with_activity(seed, "owner-1")
    await _seed_owner_with_activity(seed, "owner-2")
    sender.explode.add("owner-1@example.com")

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert result.success
    assert result.stats == {"emails_sent": 1, "errors": 1, "skipped": 0}
    assert [to for to, _, _ in sender.sent] == ["owner-2@example.com"]


async def test_disabled_feature_short_circuits(ctx, seed, sender):
    await _seed_owner_with_activity(seed)
    ctx.settings = ctx.settings.model_copy(update={"seller_weekly_enabled": False})

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert result.success
    assert sender.sent == []


async def test_candidate_query_failure_fails_the_job(ctx, db):
    ctx.db = BrokenTables(db, {"sales"})

    result = await notify_seller_weekly_analytics(SellerWeeklyAnalyticsPayload(), ctx)

    assert not result.success


async def test_top_sales_ranking(db, seed):
    for n in range(7):
        await seed.sale(f"s{n}", owner_id="owner-1")
        for v in range(n):
            await seed.event(f"s{n}-v{v}", f"s{n}", "owner-1", "view", IN_WEEK)
    await seed.sale("hidden", owner_id="owner-1", status="draft")
    await seed.event("hidden-v", "hidden", "owner-1", "view", IN_WEEK)

    metrics = await get_seller_weekly_analytics(db, "owner-1", WEEK_START, WEEK_END)

    assert metrics.total_views == sum(range(7)) + 1
    assert [m.sale_id for m in metrics.top_sales] == ["s6", "s5", "s4", "s3", "s2"]
