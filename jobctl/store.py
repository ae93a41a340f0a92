"""Queue store: a FIFO list of job ids plus expiring envelope bodies.

All operations are remote calls. Any failure to reach the backend is raised as
:class:`StoreUnavailable` so callers can tell "store down" apart from "empty".
"""

from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import JOB_DATA_PREFIX, JOB_QUEUE_KEY, Settings


class StoreUnavailable(RuntimeError):
    pass


class QueueStore:
    async def push(self, job_id: str) -> None:
        raise NotImplementedError

    async def pop(self, limit: int) -> List[str]:
        raise NotImplementedError

    async def get(self, job_id: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, job_id: str, data: str, ttl: int) -> None:
        raise NotImplementedError

    async def delete(self, job_id: str) -> None:
        raise NotImplementedError

    async def length(self) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        pass


def _decode(value):
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisQueueStore(QueueStore):
    """LPUSH onto the queue key, RPOP from it: oldest id comes out first."""

    def __init__(
        self,
        client: Optional[aioredis.Redis],
        queue_key: str = JOB_QUEUE_KEY,
        data_prefix: str = JOB_DATA_PREFIX,
    ):
        self._client = client
        self.queue_key = queue_key
        self.data_prefix = data_prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisQueueStore":
        if not settings.redis_url:
            return cls(None)
        return cls(aioredis.from_url(settings.redis_url, decode_responses=True))

    def _key(self, job_id: str) -> str:
        return f"{self.data_prefix}{job_id}"

    def _require(self) -> aioredis.Redis:
        if self._client is None:
            raise StoreUnavailable("Queue store not configured")
        return self._client

    async def push(self, job_id):
        client = self._require()
        try:
            await client.lpush(self.queue_key, job_id)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to enqueue job: {e}") from e

    async def pop(self, limit):
        if limit <= 0:
            return []
        client = self._require()
        try:
            ids = await client.rpop(self.queue_key, limit)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to dequeue jobs: {e}") from e
        return [_decode(i) for i in ids or []]

    async def get(self, job_id):
        client = self._require()
        try:
            return _decode(await client.get(self._key(job_id)))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to read job data: {e}") from e

    async def set(self, job_id, data, ttl):
        client = self._require()
        try:
            await client.set(self._key(job_id), data, ex=ttl)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to store job data: {e}") from e

    async def delete(self, job_id):
        client = self._require()
        try:
            await client.delete(self._key(job_id))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to delete job data: {e}") from e

    async def length(self):
        client = self._require()
        try:
            return int(await client.llen(self.queue_key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(f"Failed to read queue length: {e}") from e

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
