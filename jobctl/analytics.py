"""Seller analytics queries."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from .db import DataStore

VIEW_EVENTS = ("view",)
SAVE_EVENTS = ("save", "favorite")
CLICK_EVENTS = ("click",)
TOP_SALES_LIMIT = 5


@dataclass
class SaleMetrics:
    sale_id: str
    title: str
    views: int = 0
    saves: int = 0
    clicks: int = 0

    @property
    def ctr(self) -> float:
        return (self.clicks / self.views) * 100 if self.views else 0.0


@dataclass
class SellerWeeklyAnalytics:
    total_views: int = 0
    total_saves: int = 0
    total_clicks: int = 0
    top_sales: List[SaleMetrics] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.total_views or self.total_saves or self.total_clicks)


async def get_seller_weekly_analytics(
    db: DataStore, owner_id: str, start: datetime, end: datetime
) -> SellerWeeklyAnalytics:
    """Views/saves/clicks for one owner's sales in [start, end), plus the top
    published sales ranked by views, then saves, then clicks."""
    events = await db.select(
        "analytics_events",
        ("sale_id", "event_type"),
        eq={"owner_id": owner_id, "is_test": False},
        gte={"ts": start},
        lt={"ts": end},
    )

    per_sale: Dict[str, List[int]] = {}
    for event in events:
        if not event["sale_id"]:
            continue
        counts = per_sale.setdefault(event["sale_id"], [0, 0, 0])
        kind = event["event_type"]
        if kind in VIEW_EVENTS:
            counts[0] += 1
        elif kind in SAVE_EVENTS:
            counts[1] += 1
        elif kind in CLICK_EVENTS:
            counts[2] += 1

    result = SellerWeeklyAnalytics(
        total_views=sum(c[0] for c in per_sale.values()),
        total_saves=sum(c[1] for c in per_sale.values()),
        total_clicks=sum(c[2] for c in per_sale.values()),
    )
    if result.is_empty:
        return result

    sales = await db.select(
        "sales",
        ("id", "title"),
        eq={"status": "published", "owner_id": owner_id},
        in_={"id": sorted(per_sale)},
    )
    top = [
        SaleMetrics(sale["id"], sale["title"] or "Untitled Sale", *per_sale[sale["id"]])
        for sale in sales
        if any(per_sale[sale["id"]])
    ]
    top.sort(key=lambda m: (m.views, m.saves, m.clicks), reverse=True)
    result.top_sales = top[:TOP_SALES_LIMIT]
    return result
