"""Redis-backed sliding window limiter shared by every service replica."""

from __future__ import annotations

import time
from typing import Callable, Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisSlidingWindowRateLimiter:
    """Sliding window limiter stored in one Redis sorted set per key."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])
    local member = ARGV[4]

    redis.call('ZREMRANGEBYSCORE', key, '-inf', now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_requests then
        return 0
    end
    redis.call('ZADD', key, now_ms, member)
    redis.call('PEXPIRE', key, window_ms)
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "userms:rate",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._clock = clock
        self._script = client.register_script(self._LUA_SCRIPT)

    def allow(self, key: str) -> bool:
        """Return ``True`` when ``key`` is still within the shared rate limit."""
        now_ms = int(self._clock() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        member = self._member(redis_key, now_ms)
        try:
            result = self._script(
                keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms, member]
            )
            return int(result) == 1
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                return self._allow_without_lua(redis_key, now_ms, member)
            raise

    def _member(self, redis_key: str, now_ms: int) -> str:
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        return f"{now_ms}:{seq}"

    def _allow_without_lua(self, redis_key: str, now_ms: int, member: str) -> bool:
        # Not atomic across replicas; only used against servers without scripting.
        self._client.zremrangebyscore(redis_key, "-inf", now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            return False
        self._client.zadd(redis_key, {member: now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return True
