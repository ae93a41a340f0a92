import uuid
from typing import Any, Dict, List, Optional, Union

from .config import Settings
from .models import Job, JobType, QueueStatus
from .store import QueueStore, StoreUnavailable
from .telemetry import get_logger
from .utils import epoch_ms

log = get_logger(__name__)


# ---------- Jobs: enqueue / dequeue / complete / retry ----------
async def enqueue_job(
    store: QueueStore,
    job_type: Union[JobType, str],
    payload: Optional[Dict[str, Any]] = None,
    *,
    settings: Settings,
    max_attempts: Optional[int] = None,
) -> str:
    """Persist an envelope and push its id to the tail of the queue.

    An unreachable store is logged and swallowed: the caller still gets an id,
    the job is simply lost.
    """
    try:
        job_type = JobType(job_type)
    except ValueError:
        raise ValueError(f"Unknown job type: {job_type}")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("payload must be a mapping")

    mattempts = max_attempts if max_attempts is not None else settings.max_attempts_default
    if mattempts < 1:
        raise ValueError("max_attempts must be >= 1")

    job = Job(
        id=uuid.uuid4().hex,
        type=job_type.value,
        payload=payload,
        enqueued_at=epoch_ms(),
        attempts=0,
        max_attempts=mattempts,
    )

    try:
        await store.set(job.id, job.to_json(), settings.job_ttl_seconds)
        await store.push(job.id)
    except StoreUnavailable as e:
        log.warning("enqueue_failed", job_id=job.id, job_type=job.type, error=str(e))
        return job.id

    log.info("job_enqueued", job_id=job.id, job_type=job.type)
    return job.id


async def dequeue_jobs(store: QueueStore, limit: int) -> List[Job]:
    """Pop up to `limit` ids and load their envelopes (oldest first)."""
    try:
        job_ids = await store.pop(limit)
    except StoreUnavailable as e:
        log.warning("dequeue_failed", error=str(e))
        return []

    jobs: List[Job] = []
    for job_id in job_ids:
        try:
            raw = await store.get(job_id)
        except StoreUnavailable as e:
            log.error("job_data_unreadable", job_id=job_id, error=str(e))
            continue
        if raw is None:
            # expired or already dropped
            log.info("job_data_missing", job_id=job_id)
            continue
        try:
            jobs.append(Job.from_json(raw))
        except ValueError as e:
            log.error("job_data_corrupt", job_id=job_id, error=str(e))
    return jobs


async def complete_job(store: QueueStore, job_id: str) -> None:
    try:
        await store.delete(job_id)
    except StoreUnavailable as e:
        log.warning("complete_failed", job_id=job_id, error=str(e))


async def retry_job(store: QueueStore, job: Job, *, settings: Settings) -> bool:
    """Bump attempts on the same envelope and requeue it at the tail.

    Returns False when the job is dropped (attempt cap reached, or the store
    could not be reached to requeue it).
    """
    job.attempts += 1

    if job.attempts >= job.max_attempts:
        await complete_job(store, job.id)
        log.warning("job_dropped", job_id=job.id, job_type=job.type, attempts=job.attempts)
        return False

    try:
        await store.set(job.id, job.to_json(), settings.job_ttl_seconds)
        await store.push(job.id)
    except StoreUnavailable as e:
        log.error("retry_failed", job_id=job.id, job_type=job.type, error=str(e))
        return False
    return True


# ---------- Queries ----------
async def queue_status(store: QueueStore) -> QueueStatus:
    try:
        return QueueStatus(length=await store.length(), store_reachable=True)
    except StoreUnavailable:
        return QueueStatus(length=0, store_reachable=False)
