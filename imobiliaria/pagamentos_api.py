"""Pagamentos de aluguel API: monthly payments per contract, plus the daily due-date run."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, select

from .app_authz import require_permission
from .app_sessions import require_session
from .db import get_session
from .errors import BadRequestError, ConflictError, NotFoundError
from .models import Contrato, Pagamento, as_utc
from .notificacao_service import NotificacaoService
from .pagination import make_page_response, offset_of, parse_page_params
from .security_logger import log_security_event
from .validation import (
    PAGAMENTO_RULES,
    PAGAMENTO_STATUS,
    as_int,
    ensure_valid,
    json_body,
    parse_date,
    sanitize_input,
    validate_pagamento,
    validate_pagamento_update,
)

logger = logging.getLogger("imobiliaria.pagamentos")

bp = Blueprint("pagamentos_api", __name__, url_prefix="/api/pagamentos")

FIELDS = tuple(PAGAMENTO_RULES)
_MONEY = ("valor_devido", "valor_pago", "valor_juros", "valor_multa")
_DATES = ("mes_referencia", "data_vencimento", "data_pagamento")


def _iso(value: Any) -> str | None:
    return value.isoformat() if value else None


def serialize_pagamento(p: Pagamento) -> dict[str, Any]:
    data: dict[str, Any] = {"id": p.id}
    for name in FIELDS:
        data[name] = getattr(p, name)
    for name in _DATES:
        data[name] = _iso(data[name])
    data["valor_total"] = round(p.valor_devido + (p.valor_juros or 0) + (p.valor_multa or 0), 2)
    c = p.contrato
    data["contrato"] = {
        "id": c.id,
        "imovel": {"id": c.imovel.id, "nome": c.imovel.nome} if c.imovel else None,
        "inquilino": {"id": c.inquilino.id, "nome": c.inquilino.nome} if c.inquilino else None,
    }
    data["created_at"] = _iso(as_utc(p.created_at))
    data["updated_at"] = _iso(as_utc(p.updated_at))
    return data


def _coerce(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in FIELDS:
        if name not in data:
            continue
        value = data[name]
        if value in (None, ""):
            value = 0.0 if name in ("valor_juros", "valor_multa") else None
        elif name == "contrato_id":
            value = as_int(value)
        elif name in _MONEY:
            value = float(value)
        elif name in _DATES:
            value = parse_date(value)
            if name == "mes_referencia":
                value = value.replace(day=1)
        out[name] = value
    return out


def _get_contrato(db, contrato_id: int) -> Contrato:
    c = db.get(Contrato, contrato_id)
    if c is None:
        ensure_valid([{"field": "contrato_id", "message": "Contrato não encontrado", "code": "NOT_FOUND"}])
    return c


def _ensure_unique_month(db, contrato_id: int, mes: date, exclude_id: int | None = None) -> None:
    stmt = select(Pagamento.id).where(Pagamento.contrato_id == contrato_id, Pagamento.mes_referencia == mes)
    if exclude_id is not None:
        stmt = stmt.where(Pagamento.id != exclude_id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise ConflictError("Já existe um pagamento para este contrato neste mês", mes_referencia=mes.isoformat())


def _get_pagamento(db, pagamento_id: int) -> Pagamento:
    p = db.get(Pagamento, pagamento_id)
    if p is None:
        raise NotFoundError("Pagamento não encontrado")
    return p


def _date_arg(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    value = parse_date(raw)
    if value is None:
        raise BadRequestError(f"Data inválida: {name}")
    return value


@bp.get("/")
@require_permission("financial.payments.view")
def list_pagamentos() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=20)
    status = request.args.get("status")
    if status and status not in PAGAMENTO_STATUS:
        raise BadRequestError("Valor inválido para status")
    raw_contrato = request.args.get("contrato_id")
    if raw_contrato and not raw_contrato.isdigit():
        raise BadRequestError("Parâmetro inválido: contrato_id")
    mes = _date_arg("mes_referencia")
    db = get_session()
    try:
        stmt = select(Pagamento)
        if status:
            stmt = stmt.where(Pagamento.status == status)
        if raw_contrato:
            stmt = stmt.where(Pagamento.contrato_id == int(raw_contrato))
        if mes:
            stmt = stmt.where(Pagamento.mes_referencia == mes.replace(day=1))
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(Pagamento.data_vencimento.desc(), Pagamento.id.desc())
            .limit(page_req["limit"])
            .offset(offset_of(page_req))
        ).scalars().all()
        return jsonify(make_page_response([serialize_pagamento(p) for p in rows], page_req, int(total)))
    finally:
        db.close()


@bp.post("/")
@require_permission("financial.payments.create")
def create_pagamento() -> ResponseReturnValue:
    user = require_session()
    data = sanitize_input(json_body())
    ensure_valid(validate_pagamento(data))
    db = get_session()
    try:
        values = _coerce(data)
        _get_contrato(db, values["contrato_id"])
        _ensure_unique_month(db, values["contrato_id"], values["mes_referencia"])
        values["status"] = values.get("status") or "pendente"
        p = Pagamento(**values)
        db.add(p)
        db.commit()
        db.refresh(p)
        logger.info("pagamento created id=%s contrato=%s by user=%s", p.id, p.contrato_id, user["id"])
        return jsonify({"ok": True, "item": serialize_pagamento(p)}), 201
    finally:
        db.close()


@bp.get("/<int:pagamento_id>")
@require_permission("financial.payments.view")
def get_pagamento(pagamento_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify({"ok": True, "item": serialize_pagamento(_get_pagamento(db, pagamento_id))})
    finally:
        db.close()


@bp.put("/<int:pagamento_id>")
@require_permission("financial.payments.edit")
def update_pagamento(pagamento_id: int) -> ResponseReturnValue:
    data = sanitize_input(json_body())
    changes = {k: v for k, v in data.items() if k in FIELDS}
    if not changes:
        raise BadRequestError("Nenhum campo para atualizar")
    db = get_session()
    try:
        p = _get_pagamento(db, pagamento_id)
        current = {name: getattr(p, name) for name in FIELDS}
        ensure_valid(validate_pagamento_update(changes, current))
        values = _coerce(changes)
        if "status" in values and values["status"] is None:
            del values["status"]
        if "contrato_id" in values:
            _get_contrato(db, values["contrato_id"])
        if "contrato_id" in values or "mes_referencia" in values:
            _ensure_unique_month(
                db,
                values.get("contrato_id", p.contrato_id),
                values.get("mes_referencia", p.mes_referencia),
                exclude_id=p.id,
            )
        for name, value in values.items():
            setattr(p, name, value)
        db.commit()
        db.refresh(p)
        return jsonify({"ok": True, "item": serialize_pagamento(p)})
    finally:
        db.close()


@bp.delete("/<int:pagamento_id>")
@require_permission("financial.payments.delete")
def delete_pagamento(pagamento_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        db.delete(_get_pagamento(db, pagamento_id))
        db.commit()
        return jsonify({"ok": True, "message": "Pagamento excluído com sucesso"})
    finally:
        db.close()


@bp.post("/processar-vencimentos")
@require_permission("financial.payments.process")
def processar_vencimentos() -> ResponseReturnValue:
    """Flag overdue payments and generate due-date notifications for `dataReferencia` (default today)."""
    data = json_body()
    raw = data.get("dataReferencia")
    hoje = None
    if raw:
        hoje = parse_date(raw)
        if hoje is None:
            raise BadRequestError("A data de referência fornecida é inválida")
    resultado = NotificacaoService().processar_notificacoes(hoje=hoje)
    log_security_event("admin_action", details={"action": "processar_vencimentos", **resultado["detalhes"]})
    return jsonify({"ok": True, "data": resultado})
