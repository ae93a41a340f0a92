from datetime import timedelta

from conftest import NOW, BrokenTables
from jobctl.handlers import cleanup_orphaned_data
from jobctl.models import CleanupOrphanedDataPayload


async def test_deletes_only_rows_with_missing_parent(ctx, seed, db):
    await seed.sale("sale-1")
    await seed.sale("sale-2")
    await db.insert("items", [
        {"id": "item-1", "sale_id": "sale-1"},
        {"id": "item-2", "sale_id": "gone-1"},
        {"id": "item-3", "sale_id": "sale-2"},
        {"id": "item-4", "sale_id": "gone-2"},
        {"id": "item-5", "sale_id": "sale-1"},
    ])

    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(batch_size=50, item_type="items"), ctx)

    assert result.success
    assert result.stats == {"scanned": 5, "deleted": 2}
    remaining = await db.select("items", ("id",))
    assert sorted(r["id"] for r in remaining) == ["item-1", "item-3", "item-5"]


async def test_cleans_analytics_events(ctx, seed, db):
    await seed.sale("sale-1")
    await seed.event("ev-1", "sale-1", "owner-1", "view", NOW)
    await seed.event("ev-2", "gone", "owner-1", "view", NOW - timedelta(hours=1))

    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(item_type="analytics_events"), ctx)

    assert result.success
    assert [r["id"] for r in await db.select("analytics_events", ("id",))] == ["ev-1"]


async def test_batch_size_limits_scan(ctx, db):
    await db.insert("items", [{"id": f"item-{n}", "sale_id": "gone"} for n in range(5)])

    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(batch_size=2), ctx)

    assert result.stats == {"scanned": 2, "deleted": 2}
    assert len(await db.select("items", ("id",))) == 3


async def test_nothing_to_scan_is_success(ctx):
    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(), ctx)

    assert result.success
    assert result.stats["deleted"] == 0


async def test_unsupported_item_type(ctx):
    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(item_type="sales"), ctx)

    assert not result.success
    assert "Unsupported itemType" in result.error


async def test_query_error_is_reported(ctx, db):
    ctx.db = BrokenTables(db, {"items"})

    result = await cleanup_orphaned_data(CleanupOrphanedDataPayload(), ctx)

    assert not result.success
    assert result.error.startswith("Query error:")
