"""
Test Redis Cache Module
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from geoadmin.core.cache import GEOMETRY_KEY_PREFIX, RedisCache, geometry_cache_key


@pytest.fixture
def mock_redis():
    with patch("redis.asyncio.from_url") as mock:
        yield mock


@pytest.fixture
def fresh_cache():
    # Reset singleton
    RedisCache._instance = None
    cache = RedisCache()
    cache.client = AsyncMock()
    yield cache
    RedisCache._instance = None


@pytest.mark.asyncio
async def test_redis_connection(mock_redis):
    RedisCache._instance = None
    cache = RedisCache()

    mock_client = AsyncMock()
    mock_redis.return_value = mock_client

    await cache.connect("redis://cache:6379/0")

    mock_redis.assert_called_once()
    assert mock_redis.call_args[0][0] == "redis://cache:6379/0"
    mock_client.ping.assert_awaited_once()
    assert cache.client == mock_client

    await cache.close()
    mock_client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_connect_failure_leaves_cache_disabled(mock_redis):
    RedisCache._instance = None
    cache = RedisCache()
    mock_client = AsyncMock()
    mock_client.ping.side_effect = ConnectionError("refused")
    mock_redis.return_value = mock_client

    await cache.connect("redis://nowhere:6379/0")

    assert cache.client is None
    assert await cache.get("anything") is None


@pytest.mark.asyncio
async def test_redis_get_set(fresh_cache):
    await fresh_cache.set("test_key", {"foo": "bar"}, ttl=60)
    fresh_cache.client.setex.assert_awaited_once_with("test_key", 60, '{"foo": "bar"}')

    fresh_cache.client.get.return_value = '{"foo": "bar"}'
    assert await fresh_cache.get("test_key") == {"foo": "bar"}

    fresh_cache.client.get.return_value = None
    assert await fresh_cache.get("missing") is None


@pytest.mark.asyncio
async def test_get_error_is_a_miss(fresh_cache):
    fresh_cache.client.get.side_effect = ConnectionError("gone")
    assert await fresh_cache.get("key") is None


@pytest.mark.asyncio
async def test_invalidate_geometries(fresh_cache):
    keys = [f"{GEOMETRY_KEY_PREFIX}:1:z=5:t=None", f"{GEOMETRY_KEY_PREFIX}:2:z=None:t=None"]

    async def scan_iter(match=None):
        for key in keys:
            yield key

    fresh_cache.client.scan_iter = MagicMock(side_effect=scan_iter)
    fresh_cache.client.delete.return_value = 1

    assert await fresh_cache.invalidate_geometries() == 2
    fresh_cache.client.scan_iter.assert_called_once_with(match=f"{GEOMETRY_KEY_PREFIX}:*")


@pytest.mark.asyncio
async def test_invalidate_without_client():
    RedisCache._instance = None
    cache = RedisCache()
    cache.client = None
    assert await cache.invalidate_geometries() == 0


def test_geometry_cache_key():
    assert geometry_cache_key(7, 5.0, None) == "geo:geometry:7:z=5.0:t=None"
    assert geometry_cache_key(7, None, 250.0) != geometry_cache_key(7, 250.0, None)
