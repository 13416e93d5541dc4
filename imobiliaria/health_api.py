from __future__ import annotations

from typing import Any

from flask import Blueprint
from sqlalchemy import text

from .db import get_session

bp = Blueprint("health_api", __name__)


@bp.get("/healthz")
def healthz() -> tuple[dict[str, Any], int]:
    # Minimal health endpoint for container orchestrators
    return {"status": "ok"}, 200


@bp.get("/api/health")
def health() -> tuple[dict[str, Any], int]:
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception:  # pragma: no cover - depends on a broken database
        database = "error"
    finally:
        db.close()
    status = 200 if database == "ok" else 503
    return {"status": "ok" if status == 200 else "degraded", "database": database}, status
