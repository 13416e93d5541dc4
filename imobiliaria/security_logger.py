"""Security event logging + suspicious-activity detection.

Each event gets an id and a severity, is checked against in-memory activity
windows (failed logins per IP / per username, invalid tokens per IP, unusual
user agents, rapid successive attempts), then logged on `imobiliaria.security`
at a level derived from its severity and persisted to `logs_auditoria`.
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from flask import current_app, g, has_app_context, has_request_context, request

from . import metrics
from .audit_repo import AuditRepo

logger = logging.getLogger("imobiliaria.security")

Severity = Literal["low", "medium", "high", "critical"]

EVENT_TYPES = (
    "login_attempt",
    "login_success",
    "login_failure",
    "token_invalid",
    "logout",
    "unauthorized_access",
    "admin_action",
    "system_error",
    "rate_limit_exceeded",
    "suspicious_activity",
)

_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}

_UNUSUAL_AGENTS = [re.compile(p, re.IGNORECASE) for p in (r"curl", r"wget", r"python", r"bot", r"crawler", r"scanner", r"^$", r"unknown")]

CLEANUP_INTERVAL_SECONDS = 60


@dataclass
class Thresholds:
    max_failed_per_ip: int = 10
    max_failed_per_user: int = 5
    max_token_invalid_per_ip: int = 20
    window_seconds: int = 15 * 60
    rapid_attempts: int = 3
    rapid_seconds: int = 30


@dataclass
class SecurityEvent:
    type: str
    severity: Severity
    id: str
    ts: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    user_id: int | None = None
    username: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None


def calculate_severity(event_type: str, details: Mapping[str, Any] | None = None) -> Severity:
    reason = (details or {}).get("reason")
    if event_type in ("login_success", "login_attempt", "logout", "admin_action"):
        return "low"
    if event_type == "login_failure":
        return "high" if reason == "account_locked" else "medium"
    if event_type == "suspicious_activity":
        return "high"
    if event_type == "system_error":
        return "critical"
    return "medium"


def is_unusual_user_agent(user_agent: str | None) -> bool:
    ua = user_agent or ""
    return any(p.search(ua) for p in _UNUSUAL_AGENTS)


class SecurityLogger:
    def __init__(self, thresholds: Thresholds | None = None, repo: AuditRepo | None = None, persist: bool = True) -> None:
        self.thresholds = thresholds or Thresholds()
        self.repo = repo or AuditRepo()
        self.persist = persist
        self._lock = threading.Lock()
        self._failed_by_ip: dict[str, deque[float]] = {}
        self._failed_by_user: dict[str, deque[float]] = {}
        self._token_invalid_by_ip: dict[str, deque[float]] = {}
        self._flagged: dict[str, float] = {}
        self._totals: dict[str, int] = {}
        self._last_cleanup = 0.0

    # --- activity windows ---
    def _prune(self, q: deque[float], now: float) -> None:
        cutoff = now - self.thresholds.window_seconds
        while q and q[0] < cutoff:
            q.popleft()

    def _track(self, table: dict[str, deque[float]], key: str | None, now: float) -> None:
        if not key:
            return
        q = table.setdefault(key, deque())
        q.append(now)
        self._prune(q, now)

    def _count(self, table: dict[str, deque[float]], key: str | None, now: float) -> int:
        if not key or key not in table:
            return 0
        q = table[key]
        self._prune(q, now)
        return len(q)

    def _cleanup(self, now: float) -> None:
        """Drop keys whose window is empty and alerts older than the window."""
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        self._last_cleanup = now
        for table in (self._failed_by_ip, self._failed_by_user, self._token_invalid_by_ip):
            for key in list(table):
                self._prune(table[key], now)
                if not table[key]:
                    del table[key]
        window = self.thresholds.window_seconds
        for key in [k for k, last in self._flagged.items() if now - last >= window]:
            del self._flagged[key]

    def _rapid(self, ip: str | None) -> bool:
        q = self._failed_by_ip.get(ip or "")
        n = self.thresholds.rapid_attempts
        if not q or len(q) < n:
            return False
        recent = list(q)[-n:]
        return recent[-1] - recent[0] < self.thresholds.rapid_seconds

    def _detect(self, event: SecurityEvent, now: float) -> list[tuple[str, str]]:
        t = self.thresholds
        found: list[tuple[str, str]] = []
        ip = event.ip_address
        if event.type == "login_failure":
            if self._count(self._failed_by_ip, ip, now) >= t.max_failed_per_ip:
                found.append((f"ip_failures:{ip}", f"Excessive failed login attempts from IP: {ip}"))
            if event.username and self._count(self._failed_by_user, event.username, now) >= t.max_failed_per_user:
                found.append((f"user_failures:{event.username}", f"Excessive failed login attempts for user: {event.username}"))
        if event.type == "token_invalid":
            if self._count(self._token_invalid_by_ip, ip, now) >= t.max_token_invalid_per_ip:
                found.append((f"ip_tokens:{ip}", f"Excessive token invalidation attempts from IP: {ip}"))
        if event.type in ("login_attempt", "login_failure", "token_invalid") and is_unusual_user_agent(event.user_agent):
            found.append((f"agent:{ip}:{event.user_agent}", f"Unusual user agent detected: {event.user_agent or '(empty)'}"))
        if event.type in ("login_failure", "login_attempt") and self._rapid(ip):
            found.append((f"rapid:{ip}", "Rapid successive authentication attempts detected"))
        return found

    def _first_trigger(self, key: str, now: float) -> bool:
        last = self._flagged.get(key)
        if last is not None and now - last < self.thresholds.window_seconds:
            return False
        self._flagged[key] = now
        return True

    def _emit(self, event: SecurityEvent) -> None:
        metrics.increment("security.event", {"type": event.type, "severity": event.severity})
        logger.log(
            _LEVELS[event.severity],
            "[SECURITY] %s severity=%s user=%s ip=%s details=%s",
            event.type,
            event.severity,
            event.username or event.user_id or "-",
            event.ip_address or "-",
            event.details,
        )
        if not self.persist:
            return
        try:
            self.repo.insert(
                event_type=event.type,
                severity=event.severity,
                user_id=event.user_id,
                username=event.username,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                details=event.details or None,
                request_id=event.request_id,
                ts=event.ts,
            )
        except Exception:
            # The request outcome must not depend on the audit table
            logger.exception("Failed to persist security event %s", event.id)

    def _new_event(self, event_type: str, now: float, details: dict[str, Any], **fields: Any) -> SecurityEvent:
        return SecurityEvent(
            type=event_type,
            severity=calculate_severity(event_type, details),
            id=f"sec_{int(now * 1000)}_{uuid.uuid4().hex[:9]}",
            ts=datetime.fromtimestamp(now, UTC),
            details=details,
            **fields,
        )

    # --- public API ---
    def record(
        self,
        event_type: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        user_id: int | None = None,
        username: str | None = None,
        details: Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> SecurityEvent:
        now = time.time()
        fields = {
            "ip_address": ip_address,
            "user_agent": user_agent,
            "user_id": user_id,
            "username": username,
            "request_id": request_id,
        }
        event = self._new_event(event_type, now, dict(details or {}), **fields)
        with self._lock:
            self._cleanup(now)
            self._totals[event_type] = self._totals.get(event_type, 0) + 1
            if event_type == "login_failure":
                self._track(self._failed_by_ip, ip_address, now)
                self._track(self._failed_by_user, username, now)
            elif event_type == "token_invalid":
                self._track(self._token_invalid_by_ip, ip_address, now)
            findings = self._detect(event, now)
            fresh = [msg for key, msg in findings if self._first_trigger(key, now)]
            if fresh:
                self._totals["suspicious_activity"] = self._totals.get("suspicious_activity", 0) + 1
        self._emit(event)
        if fresh:
            alert = self._new_event(
                "suspicious_activity",
                now,
                {"source_event": event_type, "source_id": event.id, "reasons": fresh},
                **fields,
            )
            self._emit(alert)
        return event

    def is_suspicious_ip(self, ip: str) -> bool:
        now = time.time()
        with self._lock:
            return (
                self._count(self._failed_by_ip, ip, now) >= self.thresholds.max_failed_per_ip
                or self._count(self._token_invalid_by_ip, ip, now) >= self.thresholds.max_token_invalid_per_ip
            )

    def is_suspicious_user(self, username: str) -> bool:
        now = time.time()
        with self._lock:
            return self._count(self._failed_by_user, username, now) >= self.thresholds.max_failed_per_user

    def get_security_stats(self) -> dict[str, Any]:
        now = time.time()
        with self._lock:
            self._cleanup(now)
            by_ip = {k: self._count(self._failed_by_ip, k, now) for k in list(self._failed_by_ip)}
            by_user = {k: self._count(self._failed_by_user, k, now) for k in list(self._failed_by_user)}
            tokens = {k: self._count(self._token_invalid_by_ip, k, now) for k in list(self._token_invalid_by_ip)}
            totals = dict(self._totals)
        t = self.thresholds
        return {
            "window_seconds": t.window_seconds,
            "totals": totals,
            "failed_logins_by_ip": {k: v for k, v in by_ip.items() if v},
            "failed_logins_by_user": {k: v for k, v in by_user.items() if v},
            "token_invalidations_by_ip": {k: v for k, v in tokens.items() if v},
            "suspicious_ips": sorted(
                {k for k, v in by_ip.items() if v >= t.max_failed_per_ip}
                | {k for k, v in tokens.items() if v >= t.max_token_invalid_per_ip}
            ),
            "suspicious_users": sorted(k for k, v in by_user.items() if v >= t.max_failed_per_user),
        }

    def reset(self) -> None:
        with self._lock:
            self._failed_by_ip.clear()
            self._failed_by_user.clear()
            self._token_invalid_by_ip.clear()
            self._flagged.clear()
            self._totals.clear()
            self._last_cleanup = 0.0


def get_security_logger() -> SecurityLogger:
    ext = current_app.extensions.get("security_logger")
    if ext is None:
        ext = SecurityLogger(persist=bool(current_app.config.get("SECURITY_LOG_PERSIST", True)))
        current_app.extensions["security_logger"] = ext
    return ext


def log_security_event(event_type: str, *, details: Mapping[str, Any] | None = None, **fields: Any) -> SecurityEvent | None:
    """Record an event, filling ip / user agent / request id / current user from the request."""
    if not has_app_context():
        return None
    if has_request_context():
        from .throttling import client_ip  # local import to avoid cycle

        user = getattr(g, "current_user", None)
        fields.setdefault("ip_address", client_ip())
        fields.setdefault("user_agent", request.headers.get("User-Agent", ""))
        fields.setdefault("request_id", getattr(g, "request_id", None))
        if user:
            fields.setdefault("user_id", user["id"])
            fields.setdefault("username", user["username"])
        merged = {"endpoint": request.path, "method": request.method}
        merged.update(details or {})
        details = merged
    return get_security_logger().record(event_type, details=details, **fields)


__all__ = [
    "EVENT_TYPES",
    "SecurityEvent",
    "SecurityLogger",
    "Thresholds",
    "calculate_severity",
    "get_security_logger",
    "is_unusual_user_agent",
    "log_security_event",
]
