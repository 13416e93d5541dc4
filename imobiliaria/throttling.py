"""Login throttling (per IP and per account) and a generic endpoint limiter.

Policies count *failed* logins in a fixed window. Reaching the quota blocks
the IP or account for `block_seconds`; a successful login resets both.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import Request, current_app, g, request

from . import metrics
from .rate_limiter import RateLimiter, RateLimitError, get_rate_limiter, now_epoch

P = ParamSpec("P")
R = TypeVar("R")

LOGIN_PREFIX = "login:"


def client_ip(req: Request | None = None) -> str:
    req = req or request
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("X-Real-IP", "CF-Connecting-IP"):
        val = req.headers.get(header)
        if val:
            return val.strip()
    return req.remote_addr or "unknown"


@dataclass(frozen=True)
class LimitPolicy:
    name: str
    quota: int
    per_seconds: int
    block_seconds: int

    @classmethod
    def from_mapping(cls, name: str, d: Mapping[str, int]) -> LimitPolicy:
        return cls(
            name=name,
            quota=max(1, int(d.get("quota", 5))),
            per_seconds=min(max(1, int(d.get("per_seconds", 900))), 86400),
            block_seconds=min(max(1, int(d.get("block_seconds", 900))), 86400),
        )


@dataclass
class ThrottleDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0
    scope: str | None = None


def rate_limit_headers(decision: ThrottleDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(max(1, decision.retry_after))
    return headers


class LoginThrottle:
    def __init__(self, limiter: RateLimiter, ip_policy: LimitPolicy, account_policy: LimitPolicy) -> None:
        self.limiter = limiter
        self.ip_policy = ip_policy
        self.account_policy = account_policy

    @classmethod
    def from_app(cls) -> LoginThrottle:
        cfg = current_app.config
        return cls(
            get_rate_limiter(),
            LimitPolicy.from_mapping("ip", cfg.get("LOGIN_IP_LIMIT") or {}),
            LimitPolicy.from_mapping("account", cfg.get("LOGIN_ACCOUNT_LIMIT") or {}),
        )

    @staticmethod
    def key(policy: LimitPolicy, ident: str) -> str:
        return f"{LOGIN_PREFIX}{policy.name}:{ident}"

    def status(self, policy: LimitPolicy, ident: str) -> ThrottleDecision:
        now = now_epoch()
        bucket = self.limiter.get(self.key(policy, ident))
        if bucket is not None and bucket.is_blocked(now):
            until = bucket.blocked_until or now
            return ThrottleDecision(False, policy.quota, 0, until, until - now, policy.name)
        if bucket is not None and bucket.window_open(now, policy.per_seconds):
            reset_at = bucket.window_start + policy.per_seconds
            remaining = max(0, policy.quota - bucket.count)
            if remaining == 0:
                return ThrottleDecision(False, policy.quota, 0, reset_at, reset_at - now, policy.name)
            return ThrottleDecision(True, policy.quota, remaining, reset_at)
        return ThrottleDecision(True, policy.quota, policy.quota, now + policy.per_seconds)

    def check(self, ip: str, username: str | None) -> ThrottleDecision:
        ip_status = self.status(self.ip_policy, ip)
        if not ip_status.allowed:
            return ip_status
        if username:
            acct_status = self.status(self.account_policy, username)
            if not acct_status.allowed:
                return acct_status
        return ip_status

    def _hit(self, policy: LimitPolicy, ident: str) -> None:
        bucket = self.limiter.incr(self.key(policy, ident), policy.per_seconds)
        if bucket.count >= policy.quota and not bucket.is_blocked(now_epoch()):
            self.limiter.block(self.key(policy, ident), now_epoch() + policy.block_seconds)
            metrics.increment("auth.login.blocked", {"scope": policy.name})

    def record_failure(self, ip: str, username: str | None) -> ThrottleDecision:
        self._hit(self.ip_policy, ip)
        if username:
            self._hit(self.account_policy, username)
        return self.check(ip, username)

    def reset(self, ip: str, username: str | None) -> None:
        self.limiter.reset(self.key(self.ip_policy, ip))
        if username:
            self.limiter.reset(self.key(self.account_policy, username))

    def clear(self, ip: str | None = None, username: str | None = None) -> int:
        """Remove throttle state for one IP, one account, or (no arguments) every login key."""
        if ip is None and username is None:
            return self.limiter.clear(LOGIN_PREFIX)
        keys = []
        if ip:
            keys.append(self.key(self.ip_policy, ip))
        if username:
            keys.append(self.key(self.account_policy, username))
        removed = 0
        for key in keys:
            if self.limiter.get(key) is not None:
                self.limiter.reset(key)
                removed += 1
        return removed


def rate_limit(name: str, quota: int, per_seconds: int) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Fixed-window limit per (client ip, authenticated user) for sensitive mutations.

    Raises RateLimitError which the central handler maps to 429.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if current_app.config.get("RATE_LIMIT_ENABLED", True):
                user = getattr(g, "current_user", None)
                ident = f"{client_ip()}:{user['id'] if user else '-'}"
                limiter = get_rate_limiter()
                key = f"endpoint:{name}:{ident}"
                bucket = limiter.incr(key, per_seconds)
                if bucket.count > quota:
                    retry_after = max(1, bucket.window_start + per_seconds - now_epoch())
                    metrics.increment("rate_limit.hit", {"limit": name})
                    raise RateLimitError("rate limited", retry_after=retry_after, limit=name)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "LimitPolicy",
    "LoginThrottle",
    "ThrottleDecision",
    "client_ip",
    "rate_limit",
    "rate_limit_headers",
]
