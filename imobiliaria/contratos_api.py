"""Contratos de aluguel API: listing, CRUD and closing (soft delete)."""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, select

from .app_authz import require_permission
from .app_sessions import require_session
from .db import get_session
from .errors import BadRequestError, ConflictError, NotFoundError
from .models import Cliente, Contrato, Imovel, as_utc
from .pagination import make_page_response, offset_of, parse_page_params
from .validation import (
    CONTRATO_RULES,
    CONTRATO_STATUS,
    as_int,
    ensure_valid,
    json_body,
    parse_date,
    sanitize_input,
    validate_contrato,
    validate_contrato_update,
)

logger = logging.getLogger("imobiliaria.contratos")

bp = Blueprint("contratos_api", __name__, url_prefix="/api/contratos")

FIELDS = tuple(CONTRATO_RULES)
_IDS = ("imovel_id", "inquilino_id", "proprietario_id")
_DATES = ("data_inicio", "data_fim")


def _iso(value: Any) -> str | None:
    return value.isoformat() if value else None


def serialize_contrato(c: Contrato) -> dict[str, Any]:
    data: dict[str, Any] = {"id": c.id, "user_id": c.user_id}
    for name in FIELDS:
        data[name] = getattr(c, name)
    for name in _DATES:
        data[name] = _iso(data[name])
    data["imovel"] = {"id": c.imovel.id, "nome": c.imovel.nome} if c.imovel else None
    data["inquilino"] = {"id": c.inquilino.id, "nome": c.inquilino.nome} if c.inquilino else None
    data["proprietario"] = {"id": c.proprietario.id, "nome": c.proprietario.nome} if c.proprietario else None
    data["created_at"] = _iso(as_utc(c.created_at))
    data["updated_at"] = _iso(as_utc(c.updated_at))
    return data


def _coerce(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in FIELDS:
        if name not in data:
            continue
        value = data[name]
        if value in (None, ""):
            value = None
        elif name in _IDS or name == "dia_vencimento":
            value = as_int(value)
        elif name in ("valor_aluguel", "valor_deposito"):
            value = float(value)
        elif name in _DATES:
            value = parse_date(value)
        out[name] = value
    return out


def _check_relationships(db, data: dict[str, Any]) -> None:
    errors = []
    if data.get("imovel_id"):
        imovel = db.get(Imovel, as_int(data["imovel_id"]))
        if imovel is None:
            errors.append({"field": "imovel_id", "message": "Imóvel não encontrado", "code": "NOT_FOUND"})
        elif not imovel.ativo or imovel.finalidade not in ("aluguel", "ambos"):
            errors.append(
                {"field": "imovel_id", "message": "Imóvel não está disponível para aluguel", "code": "NOT_AVAILABLE"}
            )
    for name, label in (("inquilino_id", "Inquilino"), ("proprietario_id", "Proprietário")):
        if data.get(name) and db.get(Cliente, as_int(data[name])) is None:
            errors.append({"field": name, "message": f"{label} não encontrado", "code": "NOT_FOUND"})
    ensure_valid(errors, detail="Verifique o imóvel e os clientes selecionados")


def _ensure_single_active(db, imovel_id: int, exclude_id: int | None = None) -> None:
    stmt = select(Contrato.id).where(Contrato.imovel_id == imovel_id, Contrato.status == "ativo")
    if exclude_id is not None:
        stmt = stmt.where(Contrato.id != exclude_id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise ConflictError("Já existe um contrato ativo para este imóvel")


def _get_contrato(db, contrato_id: int) -> Contrato:
    c = db.get(Contrato, contrato_id)
    if c is None:
        raise NotFoundError("Contrato não encontrado")
    return c


def _int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise BadRequestError(f"Parâmetro inválido: {name}") from e


@bp.get("/")
@require_permission("financial.contracts.view")
def list_contratos() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=10)
    status = request.args.get("status")
    if status and status not in CONTRATO_STATUS:
        raise BadRequestError("Valor inválido para status")
    db = get_session()
    try:
        stmt = select(Contrato)
        if status:
            stmt = stmt.where(Contrato.status == status)
        for name in ("imovel_id", "inquilino_id"):
            value = _int_arg(name)
            if value is not None:
                stmt = stmt.where(getattr(Contrato, name) == value)
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(Contrato.data_inicio.desc(), Contrato.id.desc())
            .limit(page_req["limit"])
            .offset(offset_of(page_req))
        ).scalars().all()
        return jsonify(make_page_response([serialize_contrato(c) for c in rows], page_req, int(total)))
    finally:
        db.close()


@bp.post("/")
@require_permission("financial.contracts.create")
def create_contrato() -> ResponseReturnValue:
    user = require_session()
    data = sanitize_input(json_body())
    ensure_valid(validate_contrato(data))
    db = get_session()
    try:
        _check_relationships(db, data)
        values = _coerce(data)
        values["status"] = values.get("status") or "ativo"
        values["dia_vencimento"] = values.get("dia_vencimento") or 10
        if values["status"] == "ativo":
            _ensure_single_active(db, values["imovel_id"])
        c = Contrato(user_id=user["id"], **values)
        db.add(c)
        db.commit()
        db.refresh(c)
        logger.info("contrato created id=%s imovel=%s by user=%s", c.id, c.imovel_id, user["id"])
        return jsonify({"ok": True, "item": serialize_contrato(c)}), 201
    finally:
        db.close()


@bp.get("/<int:contrato_id>")
@require_permission("financial.contracts.view")
def get_contrato(contrato_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify({"ok": True, "item": serialize_contrato(_get_contrato(db, contrato_id))})
    finally:
        db.close()


@bp.put("/<int:contrato_id>")
@require_permission("financial.contracts.edit")
def update_contrato(contrato_id: int) -> ResponseReturnValue:
    data = sanitize_input(json_body())
    changes = {k: v for k, v in data.items() if k in FIELDS}
    if not changes:
        raise BadRequestError("Nenhum campo para atualizar")
    db = get_session()
    try:
        c = _get_contrato(db, contrato_id)
        current = {name: getattr(c, name) for name in FIELDS}
        ensure_valid(validate_contrato_update(changes, current))
        _check_relationships(db, changes)
        values = _coerce(changes)
        if "status" in values and values["status"] is None:
            del values["status"]
        if values.get("status", c.status) == "ativo":
            _ensure_single_active(db, values.get("imovel_id") or c.imovel_id, exclude_id=c.id)
        for name, value in values.items():
            setattr(c, name, value)
        if c.dia_vencimento is None:
            c.dia_vencimento = 10
        db.commit()
        db.refresh(c)
        return jsonify({"ok": True, "item": serialize_contrato(c)})
    finally:
        db.close()


@bp.delete("/<int:contrato_id>")
@require_permission("financial.contracts.delete")
def encerrar_contrato(contrato_id: int) -> ResponseReturnValue:
    """Contracts are never removed; closing keeps their payment history."""
    db = get_session()
    try:
        c = _get_contrato(db, contrato_id)
        c.status = "encerrado"
        db.commit()
        db.refresh(c)
        logger.info("contrato closed id=%s", c.id)
        return jsonify({"ok": True, "item": serialize_contrato(c), "message": "Contrato encerrado com sucesso"})
    finally:
        db.close()
