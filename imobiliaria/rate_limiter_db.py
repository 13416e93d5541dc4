"""Rate limiter persisted in the `rate_limits` table.

Shared by every worker process and clearable by tools/clear_rate_limit.py.
Each call uses its own short-lived session so request transactions are untouched.
"""
from __future__ import annotations

from sqlalchemy import delete

from .db import get_new_session
from .models import RateLimitEntry
from .rate_limiter import Bucket, RateLimiter, next_bucket, now_epoch


def _to_bucket(row: RateLimitEntry) -> Bucket:
    return Bucket(count=row.count, window_start=row.window_start, blocked_until=row.blocked_until)


class DatabaseRateLimiter(RateLimiter):  # type: ignore[misc]
    def get(self, key: str) -> Bucket | None:
        db = get_new_session()
        try:
            row = db.get(RateLimitEntry, key)
            return _to_bucket(row) if row else None
        finally:
            db.close()

    def incr(self, key: str, per_seconds: int) -> Bucket:
        db = get_new_session()
        try:
            row = db.get(RateLimitEntry, key, with_for_update=True)
            cur = _to_bucket(row) if row else None
            bucket = next_bucket(cur, per_seconds, now_epoch())
            if row is None:
                row = RateLimitEntry(key=key)
                db.add(row)
            row.count = bucket.count
            row.window_start = bucket.window_start
            row.blocked_until = bucket.blocked_until
            db.commit()
            return bucket
        finally:
            db.close()

    def block(self, key: str, until: int) -> None:
        db = get_new_session()
        try:
            row = db.get(RateLimitEntry, key, with_for_update=True)
            if row is None:
                row = RateLimitEntry(key=key, count=0, window_start=now_epoch())
                db.add(row)
            row.blocked_until = until
            db.commit()
        finally:
            db.close()

    def reset(self, key: str) -> None:
        db = get_new_session()
        try:
            db.execute(delete(RateLimitEntry).where(RateLimitEntry.key == key))
            db.commit()
        finally:
            db.close()

    def clear(self, prefix: str = "") -> int:
        db = get_new_session()
        try:
            stmt = delete(RateLimitEntry)
            if prefix:
                stmt = stmt.where(RateLimitEntry.key.startswith(prefix))
            res = db.execute(stmt)
            db.commit()
            return res.rowcount or 0
        finally:
            db.close()


__all__ = ["DatabaseRateLimiter"]
