"""Clientes API (paginated list with search, CRUD)."""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, or_, select

from .app_authz import require_permission
from .app_sessions import require_session
from .db import get_session
from .errors import ConflictError, NotFoundError
from .models import Cliente, Contrato, Imovel, as_utc
from .pagination import make_page_response, offset_of, parse_page_params
from .validation import CLIENTE_RULES, ensure_valid, json_body, sanitize_input, validate_cliente, validate_partial

bp = Blueprint("clientes_api", __name__, url_prefix="/api/clientes")

ORDERABLE = {"nome": Cliente.nome, "email": Cliente.email, "created_at": Cliente.created_at}
FIELDS = ("nome", "email", "telefone", "cpf_cnpj", "endereco", "observacoes")


def serialize_cliente(c: Cliente) -> dict[str, Any]:
    data: dict[str, Any] = {"id": c.id, "user_id": c.user_id}
    for name in FIELDS:
        data[name] = getattr(c, name)
    for name in ("created_at", "updated_at"):
        value = as_utc(getattr(c, name))
        data[name] = value.isoformat() if value else None
    return data


def _email_taken(db, email: str | None, exclude_id: int | None = None) -> bool:
    if not email:
        return False
    stmt = select(Cliente.id).where(func.lower(Cliente.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(Cliente.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def _duplicate_email() -> None:
    ensure_valid([{"field": "email", "message": "Este valor já está em uso", "code": "DUPLICATE"}])


@bp.get("/")
@require_permission("clients.view")
def list_clientes() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=10, default_order_by="created_at")
    search = (request.args.get("search") or "").strip()
    column = ORDERABLE.get(page_req["order_by"] or "created_at", Cliente.created_at)
    db = get_session()
    try:
        stmt = select(Cliente)
        if search:
            like = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Cliente.nome).like(like),
                    func.lower(func.coalesce(Cliente.email, "")).like(like),
                    func.coalesce(Cliente.telefone, "").like(f"%{search}%"),
                )
            )
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        order = column.asc() if page_req["order"] == "asc" else column.desc()
        rows = db.execute(
            stmt.order_by(order, Cliente.id.desc()).limit(page_req["limit"]).offset(offset_of(page_req))
        ).scalars().all()
        return jsonify(make_page_response([serialize_cliente(c) for c in rows], page_req, int(total)))
    finally:
        db.close()


@bp.post("/")
@require_permission("clients.create")
def create_cliente() -> ResponseReturnValue:
    user = require_session()
    data = sanitize_input(json_body())
    ensure_valid(validate_cliente(data))
    db = get_session()
    try:
        if _email_taken(db, data.get("email")):
            _duplicate_email()
        c = Cliente(user_id=user["id"], **{k: (data.get(k) or None) for k in FIELDS})
        db.add(c)
        db.commit()
        db.refresh(c)
        return jsonify({"ok": True, "item": serialize_cliente(c)}), 201
    finally:
        db.close()


@bp.get("/<int:cliente_id>")
@require_permission("clients.view")
def get_cliente(cliente_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        c = db.get(Cliente, cliente_id)
        if c is None:
            raise NotFoundError("Cliente não encontrado")
        return jsonify({"ok": True, "item": serialize_cliente(c)})
    finally:
        db.close()


@bp.put("/<int:cliente_id>")
@require_permission("clients.edit")
def update_cliente(cliente_id: int) -> ResponseReturnValue:
    data = sanitize_input(json_body())
    db = get_session()
    try:
        c = db.get(Cliente, cliente_id)
        if c is None:
            raise NotFoundError("Cliente não encontrado")
        ensure_valid(validate_partial(data, CLIENTE_RULES))
        if "email" in data and _email_taken(db, data.get("email"), exclude_id=cliente_id):
            _duplicate_email()
        for name in FIELDS:
            if name in data:
                setattr(c, name, data[name] or None)
        db.commit()
        db.refresh(c)
        return jsonify({"ok": True, "item": serialize_cliente(c)})
    finally:
        db.close()


@bp.delete("/<int:cliente_id>")
@require_permission("clients.delete")
def delete_cliente(cliente_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        c = db.get(Cliente, cliente_id)
        if c is None:
            raise NotFoundError("Cliente não encontrado")
        linked = db.execute(
            select(func.count()).select_from(Imovel).where(Imovel.cliente_id == cliente_id)
        ).scalar_one()
        if linked:
            raise ConflictError(
                "Não é possível excluir o cliente pois existem imóveis vinculados a ele",
                imoveis_vinculados=int(linked),
            )
        contratos = db.execute(
            select(func.count())
            .select_from(Contrato)
            .where(or_(Contrato.inquilino_id == cliente_id, Contrato.proprietario_id == cliente_id))
        ).scalar_one()
        if contratos:
            raise ConflictError(
                "Não é possível excluir o cliente pois existem contratos vinculados a ele",
                contratos_vinculados=int(contratos),
            )
        db.delete(c)
        db.commit()
        return jsonify({"ok": True, "message": "Cliente excluído com sucesso"})
    finally:
        db.close()
