"""Admin user management + support log viewer.

Every mutation records an `admin_action` security event naming the action
and the target user.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_permission
from .app_sessions import require_session
from .errors import BadRequestError, ConflictError, NotFoundError
from .logging_setup import recent_logs
from .pagination import make_page_response, parse_page_params
from .passwords import generate_secure_password
from .roles import assignable_roles, can_manage_role
from .security_logger import log_security_event
from .throttling import rate_limit
from .user_repo import UserRepo, user_to_dict
from .validation import ADMIN_USER_UPDATE_RULES, ensure_valid, json_body, sanitize_input, validate_create_user, validate_partial

bp = Blueprint("admin_users_api", __name__, url_prefix="/api/admin")

_ALIASES = {"fullName": "full_name", "isActive": "is_active"}


def _normalize(raw: dict) -> dict:
    return {_ALIASES.get(k, k): v for k, v in raw.items()}


def _audit(action: str, target_id: int, **details) -> None:
    log_security_event("admin_action", details={"action": action, "target_user_id": target_id, **details})


@bp.get("/users")
@require_permission("users.view")
def list_users() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=10, max_limit=50)
    search = (request.args.get("search") or "").strip() or None
    items, total = UserRepo().list_users(search=search, page=page_req["page"], limit=page_req["limit"])
    return jsonify(make_page_response(items, page_req, total))


@bp.post("/users")
@require_permission("users.create")
@rate_limit("admin_create_user", quota=20, per_seconds=3600)
def create_user() -> ResponseReturnValue:
    actor = require_session()
    data = _normalize(sanitize_input(json_body()))
    data.setdefault("role", "real-estate-agent")
    for key in ("username", "email"):
        if isinstance(data.get(key), str):
            data[key] = data[key].lower()
    ensure_valid(validate_create_user(data))
    if data["role"] not in assignable_roles(actor["role"]):
        raise BadRequestError("Role não permitida", allowed_roles=assignable_roles(actor["role"]))
    repo = UserRepo()
    if repo.username_taken(data["username"]):
        raise ConflictError("Nome de usuário já está em uso", field="username")
    if repo.email_taken(data["email"]):
        raise ConflictError("Email já está em uso", field="email")
    user = repo.create_user(
        username=data["username"],
        email=data["email"],
        password=data["password"],
        full_name=data.get("full_name"),
        role=data["role"],
        created_by=actor["id"],
    )
    _audit("create_user", user.id, role=user.role)
    return jsonify({"ok": True, "user": user_to_dict(user), "message": "Usuário criado com sucesso"}), 201


@bp.get("/users/<int:user_id>")
@require_permission("users.view")
def get_user(user_id: int) -> ResponseReturnValue:
    data = UserRepo().get_dict(user_id, with_permissions=True)
    if data is None:
        raise NotFoundError("Usuário não encontrado")
    return jsonify({"ok": True, "user": data})


@bp.patch("/users/<int:user_id>")
@require_permission("users.edit")
def update_user(user_id: int) -> ResponseReturnValue:
    actor = require_session()
    data = {k: v for k, v in _normalize(sanitize_input(json_body())).items() if k in ADMIN_USER_UPDATE_RULES}
    if not data:
        raise BadRequestError("Pelo menos um campo deve ser fornecido para atualização")
    for key in ("username", "email"):
        if isinstance(data.get(key), str):
            data[key] = data[key].lower()
    ensure_valid(validate_partial(data, ADMIN_USER_UPDATE_RULES))
    repo = UserRepo()
    target = repo.get(user_id)
    if target is None:
        raise NotFoundError("Usuário não encontrado")
    if user_id == actor["id"] and data.get("is_active") is False:
        raise BadRequestError("Você não pode desativar sua própria conta")
    if user_id == actor["id"] and "role" in data and data["role"] != target.role:
        raise BadRequestError("Você não pode alterar sua própria role")
    if "role" in data and not can_manage_role(actor["role"], data["role"]):
        raise BadRequestError("Role não permitida", allowed_roles=assignable_roles(actor["role"]))
    if "username" in data and repo.username_taken(data["username"], exclude_id=user_id):
        raise ConflictError("Nome de usuário já está em uso", field="username")
    if "email" in data and repo.email_taken(data["email"], exclude_id=user_id):
        raise ConflictError("Email já está em uso", field="email")
    user = repo.update_user(user_id, data)
    _audit("update_user", user_id, updated_fields=sorted(data))
    return jsonify({"ok": True, "user": user_to_dict(user), "message": "Usuário atualizado com sucesso"})


@bp.post("/users/<int:user_id>/reset-password")
@require_permission("users.edit")
@rate_limit("admin_reset_password", quota=20, per_seconds=3600)
def reset_password(user_id: int) -> ResponseReturnValue:
    repo = UserRepo()
    if repo.get(user_id) is None:
        raise NotFoundError("Usuário não encontrado")
    new_password = generate_secure_password()
    repo.set_password(user_id, new_password, unlock=True)
    _audit("reset_password", user_id)
    # Shown once; never stored in clear text
    return jsonify({"ok": True, "temporary_password": new_password, "message": "Senha redefinida com sucesso"})


@bp.post("/users/<int:user_id>/unlock")
@require_permission("users.edit")
def unlock_user(user_id: int) -> ResponseReturnValue:
    repo = UserRepo()
    if not repo.unlock(user_id):
        raise NotFoundError("Usuário não encontrado")
    _audit("unlock_user", user_id)
    return jsonify({"ok": True, "user": repo.get_dict(user_id), "message": "Conta desbloqueada"})


@bp.get("/logs/recent")
@require_permission("system.admin")
def logs_recent() -> ResponseReturnValue:
    try:
        limit = min(max(int(request.args.get("limit") or 100), 1), 500)
    except ValueError as e:
        raise BadRequestError("Parâmetro inválido: limit") from e
    return jsonify({"ok": True, "items": recent_logs(limit, request.args.get("level"))})
