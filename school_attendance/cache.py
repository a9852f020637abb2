import asyncio
import inspect
import time
from typing import Optional, Protocol

import httpx
from redis.asyncio import Redis
from redis.exceptions import RedisError

from school_attendance.config import settings
from school_attendance.errors import CacheError
from school_attendance.utils.logging import get_logger

logger = get_logger(__name__)


class CacheClient(Protocol):
    """Key/value store for the attendance fast path. Backend failures raise CacheError."""

    async def get(self, key: str) -> str | None: ...

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None: ...

    async def close(self) -> None: ...


class MemoryCache:
    """Process-local cache used when no Redis is configured."""

    def __init__(self, max_entries: int = 10_000):
        self.max_entries = max_entries
        self._entries: dict[str, tuple[float, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return value

    def _make_room(self, now: float) -> None:
        self._entries = {
            key: entry for key, entry in self._entries.items() if entry[0] > now
        }
        # Still full of live keys: evict the oldest writes.
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        now = time.monotonic()
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            self._make_room(now)
        self._entries[key] = (now + ttl_seconds, value)

    async def close(self) -> None:
        self._entries.clear()


class RedisTcpCache:
    def __init__(self, client: Redis):
        self.client = client

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheError(f"Redis GET {key} failed: {exc}") from exc

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        try:
            await self.client.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as exc:
            raise CacheError(f"Redis SETEX {key} failed: {exc}") from exc

    async def close(self) -> None:
        close_result = self.client.close()
        if inspect.isawaitable(close_result):
            await close_result


class UpstashRestCache:
    """Redis commands over the Upstash REST API, one POST per command."""

    def __init__(
        self,
        rest_url: str,
        token: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=rest_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=5.0,
        )

    async def _command(self, *command: str) -> object | None:
        try:
            response = await self.client.post("/", json=list(command))
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CacheError(f"Upstash {command[0]} failed: {exc}") from exc
        if not isinstance(payload, dict):
            return None
        if payload.get("error"):
            raise CacheError(f"Upstash {command[0]} rejected: {payload['error']}")
        return payload.get("result")

    async def ping(self) -> None:
        result = await self._command("PING")
        if str(result).upper() != "PONG":
            raise CacheError(f"Upstash REST ping answered {result!r}")

    async def get(self, key: str) -> str | None:
        result = await self._command("GET", key)
        return None if result is None else str(result)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        await self._command("SETEX", key, str(ttl_seconds), value)

    async def close(self) -> None:
        await self.client.aclose()


_cache_client: CacheClient | None = None
_cache_lock = asyncio.Lock()


async def _build_redis_cache() -> RedisTcpCache:
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        ping_result = redis.ping()
        if inspect.isawaitable(ping_result):
            await ping_result
        return RedisTcpCache(redis)
    except Exception:
        close_result = redis.close()
        if inspect.isawaitable(close_result):
            await close_result
        raise


async def _build_cache_client() -> CacheClient:
    backend = settings.CACHE_BACKEND.strip().lower()
    if backend not in {"auto", "memory", "redis", "upstash_rest"}:
        logger.warning("Unknown CACHE_BACKEND %r, using auto detection", backend)
        backend = "auto"

    if backend == "memory":
        logger.info("Cache backend: memory")
        return MemoryCache()

    if backend in {"auto", "upstash_rest"}:
        if settings.UPSTASH_REDIS_REST_URL and settings.UPSTASH_REDIS_REST_TOKEN:
            upstash_cache = UpstashRestCache(
                settings.UPSTASH_REDIS_REST_URL, settings.UPSTASH_REDIS_REST_TOKEN
            )
            try:
                await upstash_cache.ping()
                logger.info("Cache backend: Upstash REST")
                return upstash_cache
            except CacheError as error:
                await upstash_cache.close()
                logger.warning("Upstash REST unavailable: %s", error)
        elif backend == "upstash_rest":
            logger.warning(
                "Upstash REST selected but credentials are missing. "
                "Falling back to Redis."
            )

    try:
        cache = await _build_redis_cache()
        logger.info("Cache backend: Redis TCP")
        return cache
    except Exception as error:
        if backend != "auto":
            raise RuntimeError(f"Redis unavailable: {error}") from error
        logger.warning("Redis unavailable (%s), falling back to memory cache", error)
        return MemoryCache()


async def init_cache() -> None:
    await get_cache_client()


async def shutdown_cache() -> None:
    global _cache_client
    async with _cache_lock:
        if _cache_client is not None:
            await _cache_client.close()
            _cache_client = None


async def get_cache_client() -> CacheClient:
    global _cache_client
    if _cache_client is not None:
        return _cache_client

    async with _cache_lock:
        if _cache_client is None:
            _cache_client = await _build_cache_client()
        return _cache_client


async def get_cache():
    cache = await get_cache_client()
    yield cache
