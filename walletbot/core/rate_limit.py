from __future__ import annotations

from dataclasses import dataclass

from walletbot.core.cache import RedisCache


@dataclass
class LimitResult:
    allowed: bool
    remaining: int
    reset_seconds: int


class RateLimiter:
    def __init__(self, cache: RedisCache, limit: int, window_seconds: int = 60) -> None:
        self.cache = cache
        self.limit = limit
        self.window_seconds = window_seconds

    async def check(self, participant_id: int) -> LimitResult:
        count = await self.cache.incr_with_expiry(f"rl:cmd:{participant_id}", self.window_seconds)
        return LimitResult(
            allowed=count <= self.limit,
            remaining=max(self.limit - count, 0),
            reset_seconds=self.window_seconds,
        )
