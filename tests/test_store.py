from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from jobctl.config import Settings
from jobctl.store import RedisQueueStore, StoreUnavailable


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def redis_store(client):
    return RedisQueueStore(client)


async def test_push_appends_with_lpush(redis_store, client):
    await redis_store.push("job-1")

    client.lpush.assert_awaited_once_with("jobs:queue", "job-1")


async def test_pop_takes_from_head_with_rpop(redis_store, client):
    client.rpop.return_value = ["job-1", "job-2"]

    assert await redis_store.pop(5) == ["job-1", "job-2"]
    client.rpop.assert_awaited_once_with("jobs:queue", 5)


async def test_pop_empty_queue(redis_store, client):
    client.rpop.return_value = None

    assert await redis_store.pop(5) == []


async def test_pop_zero_does_not_touch_redis(redis_store, client):
    assert await redis_store.pop(0) == []
    client.rpop.assert_not_awaited()


async def test_envelope_keys_and_expiry(redis_store, client):
    client.get.return_value = b'{"id": "job-1"}'

    await redis_store.set("job-1", '{"id": "job-1"}', 604800)
    assert await redis_store.get("job-1") == '{"id": "job-1"}'
    await redis_store.delete("job-1")

    client.set.assert_awaited_once_with("jobs:data:job-1", '{"id": "job-1"}', ex=604800)
    client.get.assert_awaited_once_with("jobs:data:job-1")
    client.delete.assert_awaited_once_with("jobs:data:job-1")


async def test_redis_errors_become_store_unavailable(redis_store, client):
    client.lpush.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(StoreUnavailable):
        await redis_store.push("job-1")


async def test_unconfigured_store_is_unavailable():
    store = RedisQueueStore.from_settings(Settings(_env_file=None, redis_url=None))

    with pytest.raises(StoreUnavailable, match="not configured"):
        await store.length()
    await store.close()
