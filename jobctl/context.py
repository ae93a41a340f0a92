from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import AsyncIterator, Callable, List, Optional

import httpx

from .config import Settings
from .db import AccountDirectory, DataStore, SqliteAccountDirectory, SqliteDataStore
from .notify import NotificationSender, sender_from_settings
from .store import QueueStore, RedisQueueStore
from .telemetry import ErrorSink, LogErrorSink, get_logger
from .utils import utcnow

log = get_logger(__name__)


@dataclass
class AggregateRow:
    sale_id: Optional[str]
    owner_id: Optional[str]
    event_type: str
    count: int


class RollupSink:
    """Destination for daily analytics aggregates."""

    async def write(self, day: date, rows: List[AggregateRow]) -> None:
        raise NotImplementedError


class LogRollupSink(RollupSink):
    # No rollup table exists yet; the aggregate is only logged.
    async def write(self, day, rows):
        log.info(
            "analytics_rollup",
            date=day.isoformat(),
            aggregate_count=len(rows),
            total_events=sum(r.count for r in rows),
        )


@dataclass
class JobContext:
    """Everything a handler may touch. Built once per driver invocation."""

    settings: Settings
    store: QueueStore
    db: DataStore
    accounts: AccountDirectory
    sender: NotificationSender
    errors: ErrorSink = field(default_factory=LogErrorSink)
    rollups: RollupSink = field(default_factory=LogRollupSink)
    http: Optional[httpx.AsyncClient] = None
    clock: Callable[[], datetime] = utcnow

    def now(self) -> datetime:
        return self.clock()


@asynccontextmanager
async def open_context(settings: Settings) -> AsyncIterator[JobContext]:
    sender = sender_from_settings(settings)
    store = RedisQueueStore.from_settings(settings)
    db = SqliteDataStore.open(settings.database_path)
    try:
        async with httpx.AsyncClient(timeout=settings.link_check_timeout) as http:
            yield JobContext(
                settings=settings,
                store=store,
                db=db,
                accounts=SqliteAccountDirectory(db),
                sender=sender,
                http=http,
            )
    finally:
        await store.close()
        await db.close()
