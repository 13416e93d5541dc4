"""In-process memory rate limiter (single process only; default for dev and tests)."""
from __future__ import annotations

import threading

from .rate_limiter import Bucket, RateLimiter, next_bucket, now_epoch


class MemoryRateLimiter(RateLimiter):  # type: ignore[misc]
    def __init__(self) -> None:
        self._buckets: dict[str, Bucket] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Bucket | None:
        with self._lock:
            cur = self._buckets.get(key)
            return Bucket(cur.count, cur.window_start, cur.blocked_until) if cur else None

    def incr(self, key: str, per_seconds: int) -> Bucket:
        with self._lock:
            bucket = next_bucket(self._buckets.get(key), per_seconds, now_epoch())
            self._buckets[key] = bucket
            return Bucket(bucket.count, bucket.window_start, bucket.blocked_until)

    def block(self, key: str, until: int) -> None:
        with self._lock:
            cur = self._buckets.get(key)
            if cur is None:
                cur = Bucket(count=0, window_start=now_epoch())
                self._buckets[key] = cur
            cur.blocked_until = until

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def clear(self, prefix: str = "") -> int:
        with self._lock:
            keys = [k for k in self._buckets if k.startswith(prefix)]
            for k in keys:
                del self._buckets[k]
            return len(keys)


__all__ = ["MemoryRateLimiter"]
