"""Job handlers, keyed by job type.

Each handler takes its typed payload and the job context and returns a
:class:`~jobctl.models.JobResult`:

- image:postprocess: advisory reachability check of a listing image
- cleanup:orphaned-data: delete items/analytics events whose sale is gone
- analytics:aggregate: daily per-sale event counts
- favorites:starting-soon: digest of favorited sales starting soon
- seller:weekly-analytics: weekly performance summary for sellers
"""

from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional

from ..models import (
    AnalyticsAggregatePayload,
    CleanupOrphanedDataPayload,
    FavoritesStartingSoonPayload,
    ImagePostprocessPayload,
    JobResult,
    JobType,
    SellerWeeklyAnalyticsPayload,
)
from .aggregate import aggregate_daily_analytics
from .link_validator import validate_image_link
from .orphans import cleanup_orphaned_data
from .seller_weekly import notify_seller_weekly_analytics
from .starting_soon import notify_favorites_starting_soon


class HandlerSpec(NamedTuple):
    payload_type: Any
    handle: Callable[..., Awaitable[JobResult]]


HANDLERS: Dict[JobType, HandlerSpec] = {
    JobType.IMAGE_POSTPROCESS: HandlerSpec(ImagePostprocessPayload, validate_image_link),
    JobType.CLEANUP_ORPHANED_DATA: HandlerSpec(CleanupOrphanedDataPayload, cleanup_orphaned_data),
    JobType.ANALYTICS_AGGREGATE: HandlerSpec(AnalyticsAggregatePayload, aggregate_daily_analytics),
    JobType.FAVORITES_STARTING_SOON: HandlerSpec(FavoritesStartingSoonPayload, notify_favorites_starting_soon),
    JobType.SELLER_WEEKLY_ANALYTICS: HandlerSpec(SellerWeeklyAnalyticsPayload, notify_seller_weekly_analytics),
}

_missing = set(JobType) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for: {', '.join(sorted(t.value for t in _missing))}")


def get_handler(job_type: str) -> Optional[HandlerSpec]:
    try:
        return HANDLERS[JobType(job_type)]
    except ValueError:
        return None


__all__ = [
    "HANDLERS",
    "HandlerSpec",
    "aggregate_daily_analytics",
    "cleanup_orphaned_data",
    "get_handler",
    "notify_favorites_starting_soon",
    "notify_seller_weekly_analytics",
    "validate_image_link",
]
