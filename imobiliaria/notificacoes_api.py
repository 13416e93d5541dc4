"""Notificações API: the current user's notifications and notification settings."""

from __future__ import annotations

from datetime import UTC, datetime

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_permission
from .app_sessions import require_session
from .errors import BadRequestError, ConflictError, NotFoundError
from .notificacao_service import InvalidTransition, NotificacaoFilters, NotificacaoService
from .pagination import make_page_response, parse_page_params
from .validation import (
    NOTIFICACAO_PRIORIDADES,
    NOTIFICACAO_STATUS,
    NOTIFICACAO_TIPOS,
    as_int,
    ensure_valid,
    json_body,
    sanitize_input,
    validate_configuracao_notificacao,
    validate_notificacao,
)

bp = Blueprint("notificacoes_api", __name__, url_prefix="/api/notificacoes")

ACTIONS = ("marcar_como_lida", "marcar_como_enviada", "cancelar")


def _date_arg(name: str) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise BadRequestError(f"Data inválida: {name}") from e
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def _choice_arg(name: str, allowed: tuple[str, ...]) -> str | None:
    raw = request.args.get(name)
    if raw and raw not in allowed:
        raise BadRequestError(f"Valor inválido para {name}")
    return raw or None


@bp.get("/")
@require_permission("notifications.view")
def list_notificacoes() -> ResponseReturnValue:
    user = require_session()
    page_req = parse_page_params(request.args, default_limit=20)
    filters = NotificacaoFilters(
        tipo=_choice_arg("tipo", NOTIFICACAO_TIPOS),
        status=_choice_arg("status", NOTIFICACAO_STATUS),
        prioridade=_choice_arg("prioridade", NOTIFICACAO_PRIORIDADES),
        user_id=user["id"],
        contrato_id=request.args.get("contrato_id") or None,
        data_inicio=_date_arg("data_inicio"),
        data_fim=_date_arg("data_fim"),
        apenas_nao_lidas=(request.args.get("apenas_nao_lidas") or "").lower() in ("1", "true", "yes"),
    )
    svc = NotificacaoService()
    items, total = svc.buscar(filters, page_req["page"], page_req["limit"])
    body = dict(make_page_response(items, page_req, total))
    body["nao_lidas"] = svc.contar_nao_lidas(user["id"])
    return jsonify(body)


@bp.post("/")
@require_permission("notifications.create")
def create_notificacao() -> ResponseReturnValue:
    user = require_session()
    data = sanitize_input(json_body())
    ensure_valid(validate_notificacao(data))
    metadados = data.get("metadata")
    item = NotificacaoService().criar(
        tipo=data["tipo"],
        titulo=data["titulo"],
        mensagem=data["mensagem"],
        prioridade=data["prioridade"],
        user_id=user["id"],
        contrato_id=data.get("contrato_id") or None,
        pagamento_id=data.get("pagamento_id") or None,
        metadados=metadados if isinstance(metadados, dict) else None,
    )
    return jsonify({"ok": True, "item": item}), 201


@bp.get("/configuracoes")
@require_permission("notifications.view")
def get_configuracoes() -> ResponseReturnValue:
    user = require_session()
    return jsonify({"ok": True, "item": NotificacaoService().obter_configuracao(user["id"])})


@bp.put("/configuracoes")
@require_permission("notifications.view")
def update_configuracoes() -> ResponseReturnValue:
    user = require_session()
    data = json_body()
    ensure_valid(validate_configuracao_notificacao(data))
    values = {}
    for k, v in data.items():
        if k.startswith("dias_") or k.startswith("max_"):
            values[k] = as_int(v)
        elif k.startswith("notificar_") or k == "ativo":
            values[k] = bool(v)
    if not values:
        raise BadRequestError("Nenhum campo para atualizar")
    item = NotificacaoService().atualizar_configuracao(user["id"], values)
    return jsonify({"ok": True, "item": item})


@bp.get("/<int:notificacao_id>")
@require_permission("notifications.view")
def get_notificacao(notificacao_id: int) -> ResponseReturnValue:
    user = require_session()
    item = NotificacaoService().obter(notificacao_id, user["id"])
    if item is None:
        raise NotFoundError("Notificação não encontrada")
    return jsonify({"ok": True, "item": item})


@bp.patch("/<int:notificacao_id>")
@require_permission("notifications.view")
def update_notificacao(notificacao_id: int) -> ResponseReturnValue:
    user = require_session()
    action = json_body().get("action")
    if action not in ACTIONS:
        raise BadRequestError("Ação não reconhecida", allowed_actions=list(ACTIONS))
    svc = NotificacaoService()
    try:
        item = getattr(svc, action)(notificacao_id, user["id"])
    except InvalidTransition as e:
        raise ConflictError(str(e)) from e
    if item is None:
        raise NotFoundError("Notificação não encontrada")
    return jsonify({"ok": True, "item": item, "message": "Notificação atualizada com sucesso"})


@bp.delete("/<int:notificacao_id>")
@require_permission("notifications.view")
def delete_notificacao(notificacao_id: int) -> ResponseReturnValue:
    user = require_session()
    if not NotificacaoService().excluir(notificacao_id, user["id"]):
        raise NotFoundError("Notificação não encontrada")
    return jsonify({"ok": True, "message": "Notificação excluída com sucesso"})
