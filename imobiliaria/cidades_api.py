"""Cidades API: list, create, read, update, delete.

Names are unique (case-insensitive); a city referenced by imóveis cannot be
deleted (409).
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, select

from .app_authz import require_permission
from .db import get_session
from .errors import ConflictError, NotFoundError
from .models import Cidade, Imovel, as_utc
from .security_logger import log_security_event
from .validation import CIDADE_RULES, ensure_valid, json_body, sanitize_input, validate_cidade, validate_partial

bp = Blueprint("cidades_api", __name__, url_prefix="/api/cidades")


def serialize_cidade(c: Cidade) -> dict[str, Any]:
    created = as_utc(c.created_at)
    updated = as_utc(c.updated_at)
    return {
        "id": c.id,
        "nome": c.nome,
        "ativa": bool(c.ativa),
        "created_at": created.isoformat() if created else None,
        "updated_at": updated.isoformat() if updated else None,
    }


def _name_taken(db, nome: str, exclude_id: int | None = None) -> bool:
    stmt = select(Cidade.id).where(func.lower(Cidade.nome) == nome.lower())
    if exclude_id is not None:
        stmt = stmt.where(Cidade.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def _parse_bool(raw: str | None) -> bool | None:
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes", "sim")


@bp.get("/")
@require_permission("cities.view")
def list_cidades() -> ResponseReturnValue:
    ativa = _parse_bool(request.args.get("ativa"))
    db = get_session()
    try:
        stmt = select(Cidade)
        if ativa is not None:
            stmt = stmt.where(Cidade.ativa.is_(ativa))
        rows = db.execute(stmt.order_by(Cidade.nome.asc())).scalars().all()
        return jsonify({"ok": True, "items": [serialize_cidade(c) for c in rows], "total": len(rows)})
    finally:
        db.close()


@bp.post("/")
@require_permission("cities.create")
def create_cidade() -> ResponseReturnValue:
    data = sanitize_input(json_body())
    ensure_valid(validate_cidade(data))
    db = get_session()
    try:
        if _name_taken(db, data["nome"]):
            ensure_valid([{"field": "nome", "message": "Este valor já está em uso", "code": "DUPLICATE"}])
        c = Cidade(nome=data["nome"], ativa=data.get("ativa") is not False)
        db.add(c)
        db.commit()
        db.refresh(c)
        log_security_event("admin_action", details={"action": "create_cidade", "cidade_id": c.id})
        return jsonify({"ok": True, "item": serialize_cidade(c)}), 201
    finally:
        db.close()


@bp.get("/<int:cidade_id>")
@require_permission("cities.view")
def get_cidade(cidade_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        c = db.get(Cidade, cidade_id)
        if c is None:
            raise NotFoundError("Cidade não encontrada")
        return jsonify({"ok": True, "item": serialize_cidade(c)})
    finally:
        db.close()


@bp.put("/<int:cidade_id>")
@require_permission("cities.edit")
def update_cidade(cidade_id: int) -> ResponseReturnValue:
    data = sanitize_input(json_body())
    db = get_session()
    try:
        c = db.get(Cidade, cidade_id)
        if c is None:
            raise NotFoundError("Cidade não encontrada")
        ensure_valid(validate_partial(data, CIDADE_RULES))
        if "nome" in data and _name_taken(db, data["nome"], exclude_id=cidade_id):
            ensure_valid([{"field": "nome", "message": "Este valor já está em uso", "code": "DUPLICATE"}])
        if "nome" in data:
            c.nome = data["nome"]
        if "ativa" in data:
            c.ativa = bool(data["ativa"])
        db.commit()
        db.refresh(c)
        return jsonify({"ok": True, "item": serialize_cidade(c)})
    finally:
        db.close()


@bp.delete("/<int:cidade_id>")
@require_permission("cities.delete")
def delete_cidade(cidade_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        c = db.get(Cidade, cidade_id)
        if c is None:
            raise NotFoundError("Cidade não encontrada")
        in_use = db.execute(
            select(func.count()).select_from(Imovel).where(Imovel.cidade_id == cidade_id)
        ).scalar_one()
        if in_use:
            raise ConflictError(
                "Não é possível excluir a cidade pois existem imóveis vinculados a ela",
                imoveis_vinculados=int(in_use),
            )
        db.delete(c)
        db.commit()
        log_security_event("admin_action", details={"action": "delete_cidade", "cidade_id": cidade_id})
        return jsonify({"ok": True, "message": "Cidade excluída com sucesso"})
    finally:
        db.close()
