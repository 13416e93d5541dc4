"""Security audit log endpoints (admin only)."""

from __future__ import annotations

from datetime import UTC, datetime

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_permission
from .audit_repo import AuditQueryFilters, AuditRepo
from .errors import BadRequestError
from .models import as_utc
from .pagination import make_page_response, parse_page_params
from .security_logger import get_security_logger

bp = Blueprint("audit_api", __name__, url_prefix="/api/logs-auditoria")


def _parse_ts(name: str) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise BadRequestError(f"Data inválida: {name}") from e
    return value if value.tzinfo else value.replace(tzinfo=UTC)


@bp.get("/")
@require_permission("audit.logs.view")
def list_logs() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=50, max_limit=100)
    user_id_raw = request.args.get("user_id")
    try:
        user_id = int(user_id_raw) if user_id_raw else None
    except ValueError as e:
        raise BadRequestError("Parâmetro inválido: user_id") from e
    filters = AuditQueryFilters(
        event_type=request.args.get("event_type") or None,
        severity=request.args.get("severity") or None,
        user_id=user_id,
        ip_address=request.args.get("ip_address") or None,
        ts_from=_parse_ts("data_inicio"),
        ts_to=_parse_ts("data_fim"),
    )
    rows, total = AuditRepo().query(filters, page_req["page"], page_req["limit"])
    items = [
        {
            "id": r.id,
            "ts": as_utc(r.ts).isoformat() if r.ts else None,
            "event_type": r.event_type,
            "severity": r.severity,
            "user_id": r.user_id,
            "username": r.username,
            "ip_address": r.ip_address,
            "user_agent": r.user_agent,
            "details": r.details or {},
            "request_id": r.request_id,
        }
        for r in rows
    ]
    return jsonify(make_page_response(items, page_req, total))


@bp.get("/stats")
@require_permission("audit.logs.view")
def stats() -> ResponseReturnValue:
    return jsonify({"ok": True, "stats": get_security_logger().get_security_stats()})
