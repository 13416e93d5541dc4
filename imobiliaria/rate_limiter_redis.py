"""Redis rate limiter: one hash per key (count, window_start, blocked_until) with EXPIRE covering window and block."""
from __future__ import annotations

import redis

from .rate_limiter import Bucket, RateLimiter, next_bucket, now_epoch


class RedisRateLimiter(RateLimiter):  # type: ignore[misc]
    def __init__(self, url: str, prefix: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _read(self, rk: str) -> Bucket | None:
        data = self._client.hgetall(rk)
        if not data:
            return None
        blocked = data.get("blocked_until")
        return Bucket(
            count=int(data.get("count", 0)),
            window_start=int(data.get("window_start", 0)),
            blocked_until=int(blocked) if blocked else None,
        )

    def _write(self, rk: str, bucket: Bucket, min_ttl: int) -> None:
        now = now_epoch()
        ttl = max(min_ttl, (bucket.blocked_until or 0) - now, 1)
        mapping = {"count": bucket.count, "window_start": bucket.window_start}
        pipe = self._client.pipeline(transaction=True)
        pipe.delete(rk)
        pipe.hset(rk, mapping=mapping)
        if bucket.blocked_until:
            pipe.hset(rk, "blocked_until", bucket.blocked_until)
        pipe.expire(rk, ttl)
        pipe.execute()

    def get(self, key: str) -> Bucket | None:
        return self._read(self._key(key))

    def incr(self, key: str, per_seconds: int) -> Bucket:
        rk = self._key(key)
        bucket = next_bucket(self._read(rk), per_seconds, now_epoch())
        self._write(rk, bucket, per_seconds)
        return bucket

    def block(self, key: str, until: int) -> None:
        rk = self._key(key)
        cur = self._read(rk) or Bucket(count=0, window_start=now_epoch())
        cur.blocked_until = until
        remaining_ttl = self._client.ttl(rk)
        self._write(rk, cur, max(int(remaining_ttl or 0), 1))

    def reset(self, key: str) -> None:
        self._client.delete(self._key(key))

    def clear(self, prefix: str = "") -> int:
        removed = 0
        for rk in self._client.scan_iter(match=f"{self._prefix}{prefix}*"):
            removed += int(self._client.delete(rk))
        return removed


__all__ = ["RedisRateLimiter"]
