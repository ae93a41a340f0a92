import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class JobType(str, Enum):
    IMAGE_POSTPROCESS = "image:postprocess"
    CLEANUP_ORPHANED_DATA = "cleanup:orphaned-data"
    ANALYTICS_AGGREGATE = "analytics:aggregate"
    FAVORITES_STARTING_SOON = "favorites:starting-soon"
    SELLER_WEEKLY_ANALYTICS = "seller:weekly-analytics"


# Orphan scanner targets
ITEMS = "items"
ANALYTICS_EVENTS = "analytics_events"
ORPHAN_ITEM_TYPES = (ITEMS, ANALYTICS_EVENTS)


@dataclass
class Job:
    """Persisted unit of work. `type` stays a plain string so envelopes written
    with a type this build does not know can still be loaded and dropped."""

    id: str
    type: str
    payload: Dict[str, Any]
    enqueued_at: int = 0  # epoch ms
    attempts: int = 0
    max_attempts: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "enqueuedAt": self.enqueued_at,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        if not isinstance(data, dict) or "id" not in data or "type" not in data:
            raise ValueError("Envelope must be an object with 'id' and 'type'")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            payload=data.get("payload") or {},
            enqueued_at=int(data.get("enqueuedAt") or 0),
            attempts=int(data.get("attempts") or 0),
            max_attempts=int(data.get("maxAttempts") or 3),
        )

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        return cls.from_dict(json.loads(raw))


@dataclass
class JobResult:
    success: bool
    error: Optional[str] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **stats) -> "JobResult":
        return cls(success=True, stats=stats)

    @classmethod
    def fail(cls, error: str, **stats) -> "JobResult":
        return cls(success=False, error=error, stats=stats)


@dataclass
class QueueStatus:
    length: int
    store_reachable: bool


# ---------- Payloads ----------
def _opt_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


@dataclass
class ImagePostprocessPayload:
    image_url: Optional[str] = None
    sale_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImagePostprocessPayload":
        return cls(image_url=_opt_str(data, "imageUrl"), sale_id=_opt_str(data, "saleId"))


@dataclass
class CleanupOrphanedDataPayload:
    batch_size: int = 50
    item_type: str = ITEMS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CleanupOrphanedDataPayload":
        raw = data.get("batchSize")
        try:
            batch_size = int(raw) if raw else 50
        except (TypeError, ValueError):
            raise ValueError("batchSize must be an integer")
        if batch_size <= 0:
            raise ValueError("batchSize must be > 0")
        return cls(batch_size=batch_size, item_type=_opt_str(data, "itemType") or ITEMS)


@dataclass
class AnalyticsAggregatePayload:
    date: Optional[str] = None
    sale_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyticsAggregatePayload":
        return cls(date=_opt_str(data, "date"), sale_id=_opt_str(data, "saleId"))


@dataclass
class FavoritesStartingSoonPayload:
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FavoritesStartingSoonPayload":
        return cls()


@dataclass
class SellerWeeklyAnalyticsPayload:
    date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SellerWeeklyAnalyticsPayload":
        return cls(date=_opt_str(data, "date"))
