import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from redis import exceptions as redis_exceptions

from waitingflow.exceptions import StoreTimeoutError, StoreUnavailableError
from waitingflow.modules.storage import (
    WAIT_KEY_SCAN_PATTERN,
    RedisOrderedQueueStore,
    proceed_key,
    queue_name_from_key,
    wait_key,
)


@pytest_asyncio.fixture
async def redis_mock():
    """Create a mock Redis client"""
    redis = AsyncMock()

    redis.zadd = AsyncMock(return_value=1)
    redis.zrank = AsyncMock(return_value=None)
    redis.zpopmin = AsyncMock(return_value=[])
    redis.scan = AsyncMock(return_value=(0, []))

    return redis


@pytest_asyncio.fixture
async def mock_store(redis_mock):
    return RedisOrderedQueueStore(redis_mock, timeout=0.05)


def test_key_schema():
    """Key layout must stay compatible with existing data"""
    assert wait_key("default") == "users:queue:default:wait"
    assert proceed_key("default") == "users:queue:default:proceed"
    assert WAIT_KEY_SCAN_PATTERN == "users:queue:*:wait"


def test_queue_name_from_key():
    assert queue_name_from_key("users:queue:concert-7:wait") == "concert-7"
    assert queue_name_from_key(proceed_key("default")) == "default"
    assert queue_name_from_key(wait_key("flight:42")) == "flight:42"
    assert queue_name_from_key(proceed_key("flight:42:vip")) == "flight:42:vip"

    for key in ("users:queue", "users:queue::wait", "users:queue:default", "orders:queue:default:wait"):
        with pytest.raises(ValueError):
            queue_name_from_key(key)


@pytest.mark.asyncio
async def test_add_if_absent_uses_nx(mock_store, redis_mock):
    """Test add_if_absent never overwrites an existing score"""
    assert await mock_store.add_if_absent("users:queue:default:wait", "100", 1700000000) is True
    redis_mock.zadd.assert_called_once_with("users:queue:default:wait", {"100": 1700000000}, nx=True)

    redis_mock.zadd.return_value = 0
    assert await mock_store.add_if_absent("users:queue:default:wait", "100", 1700000001) is False


@pytest.mark.asyncio
async def test_rank_absent_member(mock_store, redis_mock):
    assert await mock_store.rank("users:queue:default:wait", "404") is None

    redis_mock.zrank.return_value = 2
    assert await mock_store.rank("users:queue:default:wait", "100") == 2


@pytest.mark.asyncio
async def test_pop_minimum(mock_store, redis_mock):
    """Test popped members come back ascending with float scores"""
    redis_mock.zpopmin.return_value = [("100", 1700000000), ("101", 1700000001)]

    popped = await mock_store.pop_minimum("users:queue:default:wait", 5)

    assert popped == [("100", 1700000000.0), ("101", 1700000001.0)]
    redis_mock.zpopmin.assert_called_once_with("users:queue:default:wait", 5)


@pytest.mark.asyncio
async def test_pop_minimum_non_positive_count(mock_store, redis_mock):
    """Test count <= 0 skips the store entirely"""
    assert await mock_store.pop_minimum("users:queue:default:wait", 0) == []
    assert await mock_store.pop_minimum("users:queue:default:wait", -3) == []
    redis_mock.zpopmin.assert_not_called()


@pytest.mark.asyncio
async def test_add_with_score_overwrites(mock_store, redis_mock):
    await mock_store.add_with_score("users:queue:default:proceed", "100", 1700000050)
    redis_mock.zadd.assert_called_once_with("users:queue:default:proceed", {"100": 1700000050})


@pytest.mark.asyncio
async def test_scan_keys_follows_cursor(mock_store, redis_mock):
    """Test SCAN is repeated until the cursor returns to zero"""
    redis_mock.scan.side_effect = [
        (17, ["users:queue:a:wait"]),
        (42, []),
        (0, ["users:queue:b:wait", b"users:queue:c:wait"]),
    ]

    keys = [key async for key in mock_store.scan_keys(WAIT_KEY_SCAN_PATTERN, 60)]

    assert keys == ["users:queue:a:wait", "users:queue:b:wait", "users:queue:c:wait"]
    assert redis_mock.scan.call_count == 3
    redis_mock.scan.assert_any_call(cursor=17, match=WAIT_KEY_SCAN_PATTERN, count=60)


@pytest.mark.asyncio
async def test_store_timeout(mock_store, redis_mock):
    """Test a slow store call surfaces as StoreTimeoutError"""

    async def slow_zrank(*args, **kwargs):
        await asyncio.sleep(1)

    redis_mock.zrank.side_effect = slow_zrank

    with pytest.raises(StoreTimeoutError) as exc_info:
        await mock_store.rank("users:queue:default:wait", "100")

    assert exc_info.value.operation == "zrank"
    assert exc_info.value.key == "users:queue:default:wait"
    assert exc_info.value.http_status == 504


@pytest.mark.asyncio
async def test_redis_timeout_error_maps_to_store_timeout(mock_store, redis_mock):
    redis_mock.zpopmin.side_effect = redis_exceptions.TimeoutError("read timeout")

    with pytest.raises(StoreTimeoutError):
        await mock_store.pop_minimum("users:queue:default:wait", 1)


@pytest.mark.asyncio
async def test_store_unavailable(mock_store, redis_mock):
    """Test connection failures surface as StoreUnavailableError"""
    redis_mock.zadd.side_effect = redis_exceptions.ConnectionError("connection refused")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await mock_store.add_if_absent("users:queue:default:wait", "100", 1700000000)

    assert exc_info.value.operation == "zadd_nx"
    assert "connection refused" in str(exc_info.value)
    assert exc_info.value.http_status == 503


@pytest.mark.asyncio
async def test_round_trip_against_in_memory_redis(store, fake_redis):
    """Test the adapter against the in-memory double"""
    key = wait_key("default")

    assert await store.add_if_absent(key, "100", 10) is True
    assert await store.add_if_absent(key, "101", 11) is True
    assert await store.add_if_absent(key, "100", 99) is False
    assert fake_redis.score(key, "100") == 10

    assert await store.rank(key, "101") == 1
    assert await store.pop_minimum(key, 5) == [("100", 10.0), ("101", 11.0)]
    assert await store.pop_minimum(key, 5) == []
