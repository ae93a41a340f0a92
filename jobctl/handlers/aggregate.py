from datetime import timedelta
from typing import Dict, Optional, Tuple

from ..context import AggregateRow, JobContext
from ..db import DataStoreError
from ..models import AnalyticsAggregatePayload, JobResult
from ..telemetry import get_logger
from ..utils import day_bounds, parse_day

log = get_logger(__name__)


async def aggregate_daily_analytics(payload: AnalyticsAggregatePayload, ctx: JobContext) -> JobResult:
    """Count one UTC day's non-test events per (sale, event type) and hand the
    rows to the rollup sink."""
    try:
        day = parse_day(payload.date) if payload.date else (ctx.now() - timedelta(days=1)).date()
    except ValueError as e:
        return JobResult.fail(str(e))
    start, end = day_bounds(day)

    eq = {"is_test": False}
    if payload.sale_id:
        eq["sale_id"] = payload.sale_id

    try:
        events = await ctx.db.select(
            "analytics_events",
            ("sale_id", "owner_id", "event_type"),
            eq=eq,
            gte={"ts": start},
            lt={"ts": end},
        )
    except DataStoreError as e:
        return JobResult.fail(f"Query error: {e}")

    if not events:
        log.info("no_events_to_aggregate", date=day.isoformat(), sale_id=payload.sale_id)
        return JobResult.ok(events=0, aggregates=0)

    aggregates: Dict[Tuple[Optional[str], str], AggregateRow] = {}
    for event in events:
        key = (event["sale_id"], event["event_type"])
        row = aggregates.get(key)
        if row is None:
            aggregates[key] = AggregateRow(
                sale_id=event["sale_id"],
                owner_id=event["owner_id"],
                event_type=event["event_type"],
                count=1,
            )
        else:
            row.count += 1

    await ctx.rollups.write(day, list(aggregates.values()))
    return JobResult.ok(events=len(events), aggregates=len(aggregates))
