import asyncio
import json

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from school_attendance.cache import MemoryCache, RedisTcpCache, UpstashRestCache
from school_attendance.errors import CacheError


def test_memory_cache_expires_entries():
    cache = MemoryCache()

    async def scenario():
        await cache.setex("live", 60, "marked")
        await cache.setex("stale", 0, "marked")
        return await cache.get("live"), await cache.get("stale")

    assert asyncio.run(scenario()) == ("marked", None)


def test_memory_cache_purges_expired_keys_when_full():
    cache = MemoryCache(max_entries=3)

    async def scenario():
        await cache.setex("old-1", 0, "marked")
        await cache.setex("old-2", 0, "marked")
        await cache.setex("live", 60, "marked")
        await cache.setex("new", 60, "marked")
        return await cache.get("live"), await cache.get("new")

    assert asyncio.run(scenario()) == ("marked", "marked")
    assert len(cache) == 2


def test_memory_cache_evicts_oldest_live_key_at_capacity():
    cache = MemoryCache(max_entries=2)

    async def scenario():
        for key in ("a", "b", "c"):
            await cache.setex(key, 60, "marked")
        return [await cache.get(key) for key in ("a", "b", "c")]

    assert asyncio.run(scenario()) == [None, "marked", "marked"]
    assert len(cache) == 2


class DownRedis:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl_seconds, value):
        raise RedisConnectionError("connection refused")


def test_redis_failures_become_cache_errors():
    cache = RedisTcpCache(DownRedis())

    with pytest.raises(CacheError):
        asyncio.run(cache.get("attendance:stu-1:2024-03-04:present"))
    with pytest.raises(CacheError):
        asyncio.run(cache.setex("attendance:stu-1:2024-03-04:present", 60, "marked"))


def upstash(handler):
    client = httpx.AsyncClient(
        base_url="https://cache.example.test", transport=httpx.MockTransport(handler)
    )
    return UpstashRestCache("https://cache.example.test", "token", client=client)


def test_upstash_sends_commands_as_json_arrays():
    commands = []
    store = {}

    def handler(request):
        command = json.loads(request.content)
        commands.append(command)
        if command[0] == "SETEX":
            store[command[1]] = command[3]
            return httpx.Response(200, json={"result": "OK"})
        return httpx.Response(200, json={"result": store.get(command[1])})

    cache = upstash(handler)

    async def scenario():
        await cache.setex("k", 60, "marked")
        return await cache.get("k"), await cache.get("missing")

    assert asyncio.run(scenario()) == ("marked", None)
    assert commands[0] == ["SETEX", "k", "60", "marked"]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"error": "WRONGPASS invalid token"}),
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="not json"),
    ],
)
def test_upstash_failures_become_cache_errors(response):
    cache = upstash(lambda request: response)

    with pytest.raises(CacheError):
        asyncio.run(cache.get("k"))


def test_upstash_ping_expects_pong():
    assert asyncio.run(upstash(lambda r: httpx.Response(200, json={"result": "PONG"})).ping()) is None
    with pytest.raises(CacheError):
        asyncio.run(upstash(lambda r: httpx.Response(200, json={"result": "nope"})).ping())
