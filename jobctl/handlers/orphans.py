from ..context import JobContext
from ..db import DataStoreError
from ..models import ORPHAN_ITEM_TYPES, CleanupOrphanedDataPayload, JobResult
from ..telemetry import get_logger

log = get_logger(__name__)


async def cleanup_orphaned_data(payload: CleanupOrphanedDataPayload, ctx: JobContext) -> JobResult:
    """Delete child rows whose parent sale no longer exists.

    Each candidate's parent is checked with its own lookup, so a failure can
    only happen at the single batch delete.
    """
    table = payload.item_type
    if table not in ORPHAN_ITEM_TYPES:
        return JobResult.fail(f"Unsupported itemType: {table}")

    try:
        rows = await ctx.db.select(table, ("id", "sale_id"), limit=payload.batch_size)
        if not rows:
            return JobResult.ok(scanned=0, deleted=0)

        orphaned_ids = []
        for row in rows:
            parent = []
            if row["sale_id"] is not None:
                parent = await ctx.db.select("sales", ("id",), eq={"id": row["sale_id"]}, limit=1)
            if not parent:
                orphaned_ids.append(row["id"])
    except DataStoreError as e:
        return JobResult.fail(f"Query error: {e}")

    if orphaned_ids:
        try:
            await ctx.db.delete(table, in_={"id": orphaned_ids})
        except DataStoreError as e:
            return JobResult.fail(f"Delete error: {e}")

    log.info("orphan_cleanup_completed", item_type=table, scanned=len(rows), deleted=len(orphaned_ids))
    return JobResult.ok(scanned=len(rows), deleted=len(orphaned_ids))
