from datetime import datetime, timedelta, timezone

import pytest

from jobctl.config import Settings
from jobctl.context import JobContext, RollupSink
from jobctl.db import DataStore, DataStoreError, SqliteAccountDirectory, SqliteDataStore
from jobctl.notify import NotificationSender, SendResult
from jobctl.store import QueueStore, StoreUnavailable
from jobctl.telemetry import ErrorSink
from jobctl.utils import to_iso

# A Wednesday; the previous full week is 2025-06-02 .. 2025-06-09.
NOW = datetime(2025, 6, 11, 9, 0, tzinfo=timezone.utc)


class MemoryQueueStore(QueueStore):
    """In-process queue store. Flip `available` to simulate an outage."""

    def __init__(self):
        self.queue = []
        self.data = {}
        self.ttls = {}
        self.available = True

    def _check(self):
        if not self.available:
            raise StoreUnavailable("store down")

    async def push(self, job_id):
        self._check()
        self.queue.append(job_id)

    async def pop(self, limit):
        self._check()
        ids = self.queue[:limit]
        del self.queue[:limit]
        return ids

    async def get(self, job_id):
        self._check()
        return self.data.get(job_id)

    async def set(self, job_id, data, ttl):
        self._check()
        self.data[job_id] = data
        self.ttls[job_id] = ttl

    async def delete(self, job_id):
        self._check()
        self.data.pop(job_id, None)
        self.ttls.pop(job_id, None)

    async def length(self):
        self._check()
        return len(self.queue)


class RecordingSender(NotificationSender):
    def __init__(self):
        self.sent = []
        self.reject = set()
        self.explode = set()

    async def send_digest(self, to, template, data):
        if to in self.explode:
            raise RuntimeError("mail relay exploded")
        if to in self.reject:
            return SendResult(ok=False, error="rejected")
        self.sent.append((to, template, data))
        return SendResult(ok=True)


class RecordingErrorSink(ErrorSink):
    def __init__(self):
        self.captured = []

    def capture(self, exc, tags, extra=None):
        self.captured.append((exc, dict(tags), dict(extra or {})))


class RecordingRollupSink(RollupSink):
    def __init__(self):
        self.writes = []

    async def write(self, day, rows):
        self.writes.append((day, rows))


class BrokenTables(DataStore):
    """Delegates to a real store but fails selects on the named tables."""

    def __init__(self, inner, tables):
        self.inner = inner
        self.tables = set(tables)

    async def select(self, table, *args, **kwargs):
        if table in self.tables:
            raise DataStoreError(f"relation {table} unavailable")
        return await self.inner.select(table, *args, **kwargs)

    async def insert(self, table, rows):
        return await self.inner.insert(table, rows)

    async def update(self, table, values, **kwargs):
        return await self.inner.update(table, values, **kwargs)

    async def delete(self, table, **kwargs):
        return await self.inner.delete(table, **kwargs)


class Seed:
    """Row factories for the sqlite store."""

    def __init__(self, db):
        self.db = db

    async def user(self, user_id, email=None, display_name=None, favorites_digest=True, seller_weekly=True):
        await self.db.insert("users", [{"id": user_id, "email": email or f"{user_id}@example.com"}])
        await self.db.insert("profiles", [{
            "id": user_id,
            "display_name": display_name,
            "email_favorites_digest_enabled": favorites_digest,
            "email_seller_weekly_enabled": seller_weekly,
        }])

    async def sale(self, sale_id, owner_id="owner-1", starts=None, status="published",
                   created_at=None, title=None, time_end=None):
        starts = starts or NOW + timedelta(hours=12)
        await self.db.insert("sales", [{
            "id": sale_id,
            "owner_id": owner_id,
            "title": title or f"Sale {sale_id}",
            "address": "123 Main St",
            "city": "Anytown",
            "state": "ST",
            "date_start": starts.date().isoformat(),
            "time_start": starts.strftime("%H:%M"),
            "date_end": None,
            "time_end": time_end,
            "status": status,
            "created_at": to_iso(created_at or NOW - timedelta(days=30)),
        }])

    async def favorite(self, user_id, sale_id, notified_at=None):
        await self.db.insert("favorites", [{
            "user_id": user_id,
            "sale_id": sale_id,
            "start_soon_notified_at": notified_at,
            "created_at": NOW - timedelta(days=1),
        }])

    async def event(self, event_id, sale_id, owner_id, event_type, ts, is_test=False):
        await self.db.insert("analytics_events", [{
            "id": event_id,
            "sale_id": sale_id,
            "owner_id": owner_id,
            "event_type": event_type,
            "ts": ts,
            "is_test": is_test,
        }])


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        redis_url=None,
        database_path=":memory:",
        enable_emails=True,
        favorites_starting_soon_enabled=True,
        favorites_starting_soon_hours=24,
        seller_weekly_enabled=True,
        site_url="https://example.test/",
        display_timezone="UTC",
    )


@pytest.fixture
def store():
    return MemoryQueueStore()


@pytest.fixture
async def db():
    data_store = SqliteDataStore.open(":memory:")
    yield data_store
    await data_store.close()


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def errors():
    return RecordingErrorSink()


@pytest.fixture
def rollups():
    return RecordingRollupSink()


@pytest.fixture
def ctx(settings, store, db, sender, errors, rollups):
    return JobContext(
        settings=settings,
        store=store,
        db=db,
        accounts=SqliteAccountDirectory(db),
        sender=sender,
        errors=errors,
        rollups=rollups,
        clock=lambda: NOW,
    )
