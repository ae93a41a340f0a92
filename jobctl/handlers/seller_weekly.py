from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from ..analytics import SellerWeeklyAnalytics, get_seller_weekly_analytics
from ..context import JobContext
from ..db import DataStoreError
from ..models import JobResult, SellerWeeklyAnalyticsPayload
from ..notify import SELLER_WEEKLY_ANALYTICS
from ..telemetry import get_logger
from ..utils import parse_day, previous_week_window
from .recipients import SELLER_WEEKLY_PREF, Recipient, resolve_recipients

log = get_logger(__name__)


def _fmt_day(dt: datetime, current_year: int) -> str:
    text = f"{dt:%a}, {dt:%b} {dt.day}"
    return text if dt.year == current_year else f"{text}, {dt.year}"


def build_summary(
    recipient: Recipient,
    metrics: SellerWeeklyAnalytics,
    week_start: datetime,
    week_end: datetime,
    ctx: JobContext,
) -> Dict[str, Any]:
    year = ctx.now().year
    # the window is half-open, so the last day shown is the Sunday
    last_day = week_end - timedelta(days=1)
    return {
        "owner_display_name": recipient.display_name,
        "week_start": _fmt_day(week_start, year),
        "week_end": _fmt_day(last_day, year),
        "total_views": metrics.total_views,
        "total_saves": metrics.total_saves,
        "total_clicks": metrics.total_clicks,
        "top_sales": [
            {"title": s.title, "views": s.views, "saves": s.saves, "clicks": s.clicks, "ctr": s.ctr}
            for s in metrics.top_sales
        ],
        "dashboard_url": f"{ctx.settings.site_url.rstrip('/')}/dashboard",
    }


async def notify_seller_weekly_analytics(payload: SellerWeeklyAnalyticsPayload, ctx: JobContext) -> JobResult:
    """Email each opted-in seller a summary of last week's views/saves/clicks."""
    if not ctx.settings.seller_weekly_enabled:
        log.info("seller_weekly_analytics_disabled")
        return JobResult.ok(emails_sent=0, errors=0, skipped=True)

    try:
        if payload.date:
            reference = datetime.combine(parse_day(payload.date), datetime.min.time(), tzinfo=timezone.utc)
        else:
            reference = ctx.now()
    except ValueError as e:
        return JobResult.fail(str(e))
    week_start, week_end = previous_week_window(reference)

    try:
        created = await ctx.db.select(
            "sales", ("owner_id",), gte={"created_at": week_start}, lt={"created_at": week_end}
        )
        active = await ctx.db.select(
            "analytics_events",
            ("owner_id",),
            eq={"is_test": False},
            gte={"ts": week_start},
            lt={"ts": week_end},
        )
        owner_ids = {r["owner_id"] for r in created + active if r["owner_id"]}
        if not owner_ids:
            log.info("no_eligible_sellers", week_start=week_start.isoformat())
            return JobResult.ok(emails_sent=0, errors=0, skipped=0)

        recipients = await resolve_recipients(ctx, owner_ids, SELLER_WEEKLY_PREF)
    except DataStoreError as e:
        return JobResult.fail(f"Query error: {e}")

    emails_sent = errors = skipped = 0
    for owner_id, recipient in recipients.items():
        try:
            metrics = await get_seller_weekly_analytics(ctx.db, owner_id, week_start, week_end)
            if metrics.is_empty:
                skipped += 1
                continue
            result = await ctx.sender.send_digest(
                recipient.email,
                SELLER_WEEKLY_ANALYTICS,
                build_summary(recipient, metrics, week_start, week_end, ctx),
            )
            if result.ok:
                emails_sent += 1
            else:
                errors += 1
                log.warning("seller_weekly_not_sent", owner_id=owner_id, error=result.error)
        except Exception as e:
            errors += 1
            log.error("seller_weekly_failed", owner_id=owner_id, error=str(e), exc_info=True)

    log.info(
        "seller_weekly_analytics_completed",
        week_start=week_start.isoformat(),
        week_end=week_end.isoformat(),
        candidates=len(owner_ids),
        emails_sent=emails_sent,
        skipped=skipped,
        errors=errors,
    )
    return JobResult.ok(emails_sent=emails_sent, errors=errors, skipped=skipped)
