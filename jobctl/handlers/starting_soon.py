from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from ..context import JobContext
from ..db import DataStoreError
from ..models import FavoritesStartingSoonPayload, JobResult
from ..notify import FAVORITES_STARTING_SOON
from ..telemetry import get_logger
from ..utils import listing_end, listing_start
from .recipients import FAVORITES_DIGEST_PREF, Recipient, resolve_recipients

log = get_logger(__name__)

LOOK_BACK = timedelta(hours=1)


def _fmt_day(dt: datetime) -> str:
    return f"{dt:%a}, {dt:%b} {dt.day}, {dt.year}"


def _fmt_time(dt: datetime) -> str:
    return f"{dt.hour % 12 or 12}:{dt:%M} {dt:%p}"


def format_date_range(sale: Dict[str, Any], tz: ZoneInfo) -> str:
    """'Sat, Dec 6, 2025 · 8:00 AM – 2:00 PM' or 'Sat, Dec 6, 2025 – Sun, Dec 7, 2025'."""
    start = listing_start(sale.get("date_start"), sale.get("time_start")).astimezone(tz)
    end = listing_end(sale.get("date_start"), sale.get("date_end"), sale.get("time_end"))
    if end is None:
        return f"{_fmt_day(start)} · {_fmt_time(start)}"
    end = end.astimezone(tz)
    if end.date() == start.date():
        return f"{_fmt_day(start)} · {_fmt_time(start)} – {_fmt_time(end)}"
    return f"{_fmt_day(start)} – {_fmt_day(end)}"


def format_time_window(sale: Dict[str, Any], tz: ZoneInfo) -> str:
    if not sale.get("time_start"):
        return "All day"
    start = listing_start(sale.get("date_start"), sale.get("time_start")).astimezone(tz)
    if not sale.get("time_end"):
        return _fmt_time(start)
    end = listing_end(sale.get("date_start"), sale.get("date_end"), sale.get("time_end")).astimezone(tz)
    return f"{_fmt_time(start)} – {_fmt_time(end)}"


def address_line(sale: Dict[str, Any]) -> str:
    parts = [p for p in (sale.get("address"), sale.get("city"), sale.get("state")) if p]
    return ", ".join(parts) if parts else "Address not provided"


def sale_url(site_url: str, sale_id: str) -> str:
    return f"{site_url.rstrip('/')}/sales/{sale_id}"


def build_digest(recipient: Recipient, sales: List[Dict[str, Any]], ctx: JobContext) -> Dict[str, Any]:
    tz = ZoneInfo(ctx.settings.display_timezone)
    return {
        "recipient_name": recipient.display_name,
        "hours_before_start": ctx.settings.favorites_starting_soon_hours,
        "sales": [
            {
                "id": sale["id"],
                "title": sale.get("title") or "Untitled Sale",
                "address": address_line(sale),
                "date_range": format_date_range(sale, tz),
                "time_window": format_time_window(sale, tz),
                "url": sale_url(ctx.settings.site_url, sale["id"]),
            }
            for sale in sales
        ],
    }


def _in_window(sale: Dict[str, Any], now: datetime, hours: int) -> bool:
    start: Optional[datetime] = listing_start(sale.get("date_start"), sale.get("time_start"))
    if start is None:
        return False
    return now - LOOK_BACK <= start <= now + timedelta(hours=hours)


async def notify_favorites_starting_soon(payload: FavoritesStartingSoonPayload, ctx: JobContext) -> JobResult:
    """Send one digest per user for their favorited sales that start soon.

    A favorite is stamped with `start_soon_notified_at` only after its digest
    was sent; stamped favorites are never selected again. One user's failure
    never stops the others.
    """
    settings = ctx.settings
    if not settings.favorites_starting_soon_enabled:
        log.info("favorites_starting_soon_disabled")
        return JobResult.ok(emails_sent=0, errors=0, skipped=True)

    now = ctx.now()
    hours = settings.favorites_starting_soon_hours

    try:
        favorites = await ctx.db.select(
            "favorites", ("user_id", "sale_id"), is_null=("start_soon_notified_at",)
        )
        if not favorites:
            return JobResult.ok(emails_sent=0, errors=0)

        sale_ids = sorted({f["sale_id"] for f in favorites})
        sales = await ctx.db.select("sales", eq={"status": "published"}, in_={"id": sale_ids})
        starting = {s["id"]: s for s in sales if _in_window(s, now, hours)}
        eligible = [f for f in favorites if f["sale_id"] in starting]
        if not eligible:
            return JobResult.ok(emails_sent=0, errors=0)

        recipients = await resolve_recipients(ctx, {f["user_id"] for f in eligible}, FAVORITES_DIGEST_PREF)
    except DataStoreError as e:
        return JobResult.fail(f"Query error: {e}")

    by_user: Dict[str, List[str]] = defaultdict(list)
    for fav in eligible:
        if fav["user_id"] in recipients:
            by_user[fav["user_id"]].append(fav["sale_id"])

    emails_sent = errors = notified = 0
    for user_id, user_sale_ids in by_user.items():
        recipient = recipients[user_id]
        user_sales = sorted(
            (starting[sid] for sid in user_sale_ids),
            key=lambda s: listing_start(s.get("date_start"), s.get("time_start")),
        )
        try:
            result = await ctx.sender.send_digest(
                recipient.email, FAVORITES_STARTING_SOON, build_digest(recipient, user_sales, ctx)
            )
            if not result.ok:
                errors += 1
                log.warning("favorites_digest_not_sent", user_id=user_id, error=result.error)
                continue
            emails_sent += 1
            notified += await ctx.db.update(
                "favorites",
                {"start_soon_notified_at": now},
                eq={"user_id": user_id},
                in_={"sale_id": user_sale_ids},
            )
        except Exception as e:
            errors += 1
            log.error("favorites_digest_failed", user_id=user_id, error=str(e), exc_info=True)

    log.info(
        "favorites_starting_soon_completed",
        candidates=len(eligible),
        recipients=len(by_user),
        emails_sent=emails_sent,
        errors=errors,
    )
    return JobResult.ok(emails_sent=emails_sent, errors=errors, favorites_notified=notified)
