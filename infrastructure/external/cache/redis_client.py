"""
Redis client for webhook delivery dedupe.

Redis is optional: when ``REDIS__URL`` is unset ``get_redis_client()`` returns
None and webhook batches are always processed.
"""
from __future__ import annotations

import asyncio
import socket
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class RedisClient:
    """
    Namespaced wrapper over redis.asyncio.

    Errors are logged and never raised, so an unhealthy Redis degrades to
    "no dedupe" instead of failing the webhook.
    """

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def claim(self, key: str, ttl: int) -> bool:
        """
        True for the first caller within `ttl` seconds, False for repeats.

        A Redis failure counts as a first claim: dedupe only saves work, it must
        never drop a delivery.
        """
        try:
            result = await self._client.set(self._format_key(key), "1", ex=max(1, ttl), nx=True)
        except RedisError as e:
            logger.warning("cache_claim_failed", key=key, error=str(e))
            return True
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client.delete(*[self._format_key(k) for k in keys]))
        except RedisError as e:
            logger.error("cache_delete_failed", keys=list(keys), error=str(e))
            return 0


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


def _keepalive_options() -> dict:
    if all(hasattr(socket, name) for name in ("TCP_KEEPIDLE", "TCP_KEEPINTVL", "TCP_KEEPCNT")):
        return {socket.TCP_KEEPIDLE: 1, socket.TCP_KEEPINTVL: 1, socket.TCP_KEEPCNT: 3}
    return {}


async def init_redis_client(namespace: Optional[str] = None) -> RedisClient:
    """Initialise the process-wide client (idempotent)."""
    global _redis_client, _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance
        if not settings.redis.url:
            raise RuntimeError("REDIS__URL is not configured")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=_keepalive_options(),
        )
        await client.ping()

        namespace = namespace or settings.redis.namespace
        _redis_client = client
        _cache_instance = RedisClient(client=client, namespace=namespace)
        logger.info("redis_client_initialized", namespace=namespace)
        return _cache_instance


def get_redis_client() -> Optional[RedisClient]:
    """The initialised client, or None when Redis is not configured or not up."""
    return _cache_instance


async def shutdown_redis_client() -> None:
    global _redis_client, _cache_instance

    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
        logger.info("redis_client_closed")
    except RedisError as e:
        logger.error("redis_client_close_failed", error=str(e))
    finally:
        _redis_client = None
        _cache_instance = None
