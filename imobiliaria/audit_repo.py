"""Audit repository: persistence + query + retention for security events."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, select

from .db import get_new_session, get_session
from .models import AuditLog


class AuditQueryFilters:
    def __init__(
        self,
        event_type: str | None = None,
        severity: str | None = None,
        user_id: int | None = None,
        ip_address: str | None = None,
        ts_from: datetime | None = None,
        ts_to: datetime | None = None,
    ) -> None:
        self.event_type = event_type
        self.severity = severity
        self.user_id = user_id
        self.ip_address = ip_address
        self.ts_from = ts_from
        self.ts_to = ts_to


class AuditRepo:
    def insert(
        self,
        *,
        event_type: str,
        severity: str,
        user_id: int | None,
        username: str | None,
        ip_address: str | None,
        user_agent: str | None,
        details: dict | None,
        request_id: str | None,
        ts: datetime | None = None,
    ) -> int:
        # Separate session: callers may be mid-transaction on the scoped one
        db = get_new_session()
        try:
            row = AuditLog(
                ts=ts or datetime.now(UTC),
                event_type=event_type,
                severity=severity,
                user_id=user_id,
                username=username,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:500] or None,
                details=details,
                request_id=request_id,
            )
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def query(self, filters: AuditQueryFilters, page: int, limit: int) -> tuple[list[AuditLog], int]:
        db = get_session()
        try:
            stmt = select(AuditLog)
            conds = []
            if filters.event_type:
                conds.append(AuditLog.event_type == filters.event_type)
            if filters.severity:
                conds.append(AuditLog.severity == filters.severity)
            if filters.user_id is not None:
                conds.append(AuditLog.user_id == filters.user_id)
            if filters.ip_address:
                conds.append(AuditLog.ip_address == filters.ip_address)
            if filters.ts_from:
                conds.append(AuditLog.ts >= filters.ts_from)
            if filters.ts_to:
                conds.append(AuditLog.ts <= filters.ts_to)
            if conds:
                stmt = stmt.where(and_(*conds))
            stmt = stmt.order_by(AuditLog.ts.desc(), AuditLog.id.desc())
            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            offset = (page - 1) * limit
            rows = list(db.execute(stmt.limit(limit).offset(offset)).scalars().all())
            return rows, int(total)
        finally:
            db.close()

    def count_before(self, cutoff: datetime) -> int:
        db = get_session()
        try:
            return int(db.execute(select(func.count()).select_from(AuditLog).where(AuditLog.ts < cutoff)).scalar_one())
        finally:
            db.close()

    def purge_before(self, cutoff: datetime) -> int:
        db = get_session()
        try:
            res = db.execute(delete(AuditLog).where(AuditLog.ts < cutoff))
            db.commit()
            return res.rowcount or 0
        finally:
            db.close()


__all__ = ["AuditRepo", "AuditQueryFilters"]
