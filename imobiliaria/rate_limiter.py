"""Typed RateLimiter protocol over fixed-window counters with blocking, plus a backend factory.

A bucket holds the attempt count for the current window and an optional
`blocked_until` epoch. Backends: memory (single process), database
(`rate_limits` table, shared between workers and clearable by tools) and redis.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger("imobiliaria.rate_limiter")


class RateLimitError(Exception):
    """Raised when a request exceeds the configured rate limit.

    Attributes:
        retry_after: Seconds until next permitted attempt.
        limit: Optional symbolic limit name.
    """

    def __init__(self, message: str, retry_after: int, limit: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


@dataclass
class Bucket:
    count: int
    window_start: int
    blocked_until: int | None = None

    def is_blocked(self, now: int) -> bool:
        return self.blocked_until is not None and self.blocked_until > now

    def window_open(self, now: int, per_seconds: int) -> bool:
        return now < self.window_start + per_seconds


@runtime_checkable
class RateLimiter(Protocol):
    def get(self, key: str) -> Bucket | None: ...  # pragma: no cover
    def incr(self, key: str, per_seconds: int) -> Bucket: ...  # pragma: no cover
    def block(self, key: str, until: int) -> None: ...  # pragma: no cover
    def reset(self, key: str) -> None: ...  # pragma: no cover
    def clear(self, prefix: str = "") -> int: ...  # pragma: no cover


def now_epoch() -> int:
    return int(time.time())


def next_bucket(cur: Bucket | None, per_seconds: int, now: int) -> Bucket:
    """Bucket after one more hit: a fresh window when the old one expired, else count + 1."""
    if cur is None:
        return Bucket(count=1, window_start=now)
    blocked_until = cur.blocked_until if cur.is_blocked(now) else None
    if not cur.window_open(now, per_seconds):
        return Bucket(count=1, window_start=now, blocked_until=blocked_until)
    return Bucket(count=cur.count + 1, window_start=cur.window_start, blocked_until=blocked_until)


_instance: RateLimiter | None = None
_backend_name: str | None = None


def _build(backend: str) -> RateLimiter:
    if backend == "database":
        from .rate_limiter_db import DatabaseRateLimiter

        return DatabaseRateLimiter()
    if backend == "redis":
        try:
            from .rate_limiter_redis import RedisRateLimiter  # local import keeps redis off the default path

            return RedisRateLimiter(
                os.getenv("REDIS_URL") or "redis://localhost:6379/0",
                os.getenv("RATE_LIMIT_PREFIX", "imobiliaria:rl:"),
            )
        except Exception:
            logger.warning("Redis rate limiter unavailable; using memory backend", exc_info=True)
    from .rate_limiter_memory import MemoryRateLimiter

    return MemoryRateLimiter()


def configure(backend: str) -> RateLimiter:
    """Select the backend (memory | database | redis); rebuilds only when it changes."""
    global _instance, _backend_name
    backend = (backend or "memory").strip().lower()
    if _instance is None or backend != _backend_name:
        _instance = _build(backend)
        _backend_name = backend
    return _instance


def get_rate_limiter() -> RateLimiter:
    if _instance is None:
        return configure(os.getenv("RATE_LIMIT_BACKEND", "memory"))
    return _instance


def _test_reset() -> None:  # pragma: no cover - invoked by tests explicitly
    global _instance, _backend_name
    _instance = None
    _backend_name = None


__all__ = [
    "Bucket",
    "RateLimiter",
    "RateLimitError",
    "configure",
    "get_rate_limiter",
    "next_bucket",
    "now_epoch",
]
