import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from .context import JobContext
from .handlers import get_handler
from .models import Job, JobResult, JobType, QueueStatus
from .repository import complete_job, dequeue_jobs, queue_status, retry_job
from .store import StoreUnavailable
from .telemetry import get_logger

log = get_logger(__name__)


class JobFailed(RuntimeError):
    """A handler-reported failure, raised only to hand it to the error sink."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def _run_handler(job: Job, ctx: JobContext) -> JobResult:
    spec = get_handler(job.type)
    if spec is None:
        return JobResult.fail(f"Unknown job type: {job.type}")
    payload = spec.payload_type.from_dict(job.payload or {})
    return await spec.handle(payload, ctx)


async def process_job(job: Job, ctx: JobContext) -> JobResult:
    """Run one envelope through its handler and settle it.

    Success deletes the envelope. A failed result or a raised exception both
    go through the retry policy and are reported to the error sink; nothing
    is raised to the caller.
    """
    start = time.monotonic()
    log.info("job_processing", job_id=job.id, job_type=job.type, attempts=job.attempts)

    error: Optional[BaseException] = None
    try:
        result = await _run_handler(job, ctx)
    except Exception as e:
        error = e
        result = JobResult.fail(str(e) or type(e).__name__)
        log.error("job_processing_error", job_id=job.id, job_type=job.type,
                  duration_ms=_elapsed_ms(start), exc_info=True)

    if result.success:
        await complete_job(ctx.store, job.id)
        log.info("job_completed", job_id=job.id, job_type=job.type, duration_ms=_elapsed_ms(start))
        return result

    attempts = job.attempts
    will_retry = await retry_job(ctx.store, job, settings=ctx.settings)
    if error is None:
        log.warning("job_failed", job_id=job.id, job_type=job.type, error=result.error,
                    will_retry=will_retry, attempts=attempts, duration_ms=_elapsed_ms(start))
        error = JobFailed(result.error)

    ctx.errors.capture(
        error,
        tags={"job_type": job.type, "job_id": job.id, "will_retry": str(will_retry).lower()},
        extra={"payload": job.payload, "attempts": attempts},
    )
    return result


@dataclass
class BatchReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    by_type: Dict[str, Dict[str, int]] = field(default_factory=dict)
    queue_length: int = 0
    store_reachable: bool = True
    duration_ms: int = 0

    def record(self, job: Job, result: JobResult) -> None:
        self.processed += 1
        bucket = self.by_type.setdefault(job.type, {"succeeded": 0, "failed": 0})
        if result.success:
            self.succeeded += 1
            bucket["succeeded"] += 1
        else:
            self.failed += 1
            bucket["failed"] += 1


async def run_batch(ctx: JobContext, limit: Optional[int] = None,
                    max_run_seconds: Optional[float] = None) -> BatchReport:
    """One driver pass: dequeue up to `limit` jobs and process them in order.

    Stops early once `max_run_seconds` have elapsed. Popped jobs left over are
    requeued untouched at the tail.
    """
    if limit is None:
        limit = ctx.settings.max_jobs_per_run
    budget = max_run_seconds if max_run_seconds is not None else ctx.settings.max_run_seconds
    start = time.monotonic()
    report = BatchReport()

    jobs = await dequeue_jobs(ctx.store, limit)
    for index, job in enumerate(jobs):
        if time.monotonic() - start > budget:
            remaining = jobs[index:]
            log.warning("batch_time_limit", processed=report.processed, remaining=len(remaining))
            for leftover in remaining:
                try:
                    await ctx.store.push(leftover.id)
                except StoreUnavailable as e:
                    log.error("requeue_failed", job_id=leftover.id, error=str(e))
            break
        report.record(job, await process_job(job, ctx))

    status: QueueStatus = await queue_status(ctx.store)
    report.queue_length = status.length
    report.store_reachable = status.store_reachable
    report.duration_ms = _elapsed_ms(start)
    log.info("batch_completed", processed=report.processed, succeeded=report.succeeded,
             failed=report.failed, queue_length=report.queue_length, duration_ms=report.duration_ms)
    return report


async def run_trigger(job_type: JobType, payload: Dict, ctx: JobContext) -> JobResult:
    """Cron entry point: run a digest handler directly, without the queue.

    Honors the global email switch before touching any data.
    """
    if job_type in (JobType.FAVORITES_STARTING_SOON, JobType.SELLER_WEEKLY_ANALYTICS) \
            and not ctx.settings.enable_emails:
        log.info("trigger_skipped_emails_disabled", job_type=job_type.value)
        return JobResult.ok(emails_sent=0, errors=0, emails_enabled=False)

    log.info("trigger_started", job_type=job_type.value)
    spec = get_handler(job_type.value)
    result = await spec.handle(spec.payload_type.from_dict(payload), ctx)
    if result.success:
        log.info("trigger_completed", job_type=job_type.value, **result.stats)
    else:
        log.error("trigger_failed", job_type=job_type.value, error=result.error)
    return result
