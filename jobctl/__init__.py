"""jobctl: background job queue for the marketplace."""

from .models import Job, JobResult, JobType, QueueStatus
from .repository import dequeue_jobs, enqueue_job, queue_status, retry_job
from .worker import process_job, run_batch

__all__ = [
    "Job",
    "JobResult",
    "JobType",
    "QueueStatus",
    "dequeue_jobs",
    "enqueue_job",
    "process_job",
    "queue_status",
    "retry_job",
    "run_batch",
]
