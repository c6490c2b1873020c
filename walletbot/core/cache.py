from __future__ import annotations

import logging
from typing import Any

import orjson
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Best-effort cache. Every method degrades to a neutral result when Redis is down."""

    def __init__(self, redis_url: str) -> None:
        self.redis = Redis.from_url(redis_url, decode_responses=False)

    async def close(self) -> None:
        await self.redis.aclose()

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(key)
            if not raw:
                return None
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("cache_json_decode_error", extra={"event": "cache_json_decode_error", "error": key})
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_get_error", extra={"event": "cache_get_error", "error": str(exc)})
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.redis.set(key, orjson.dumps(value), ex=ttl)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_set_error", extra={"event": "cache_set_error", "error": str(exc)})

    async def incr_with_expiry(self, key: str, ttl: int) -> int:
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, ttl)
            count, _ = await pipe.execute()
            return int(count)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_incr_error", extra={"event": "cache_incr_error", "error": str(exc)})
            return 0

    async def set_if_absent(self, key: str, ttl: int, value: str = "1", default: bool = False) -> bool:
        """SET NX. ``default`` is returned when Redis cannot be reached."""
        try:
            return bool(await self.redis.set(key, value.encode("utf-8"), nx=True, ex=ttl))
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_set_if_absent_error", extra={"event": "cache_set_if_absent_error", "error": str(exc)})
            return default
