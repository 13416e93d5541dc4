"""Self-service profile endpoints for the logged-in user."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask.typing import ResponseReturnValue

from .app_authz import require_permission
from .app_sessions import require_session
from .errors import BadRequestError, NotFoundError, ValidationError
from .passwords import verify_password
from .security_logger import log_security_event
from .throttling import rate_limit
from .user_repo import UserRepo
from .validation import PROFILE_RULES, ensure_valid, json_body, sanitize_input, validate_change_password, validate_partial

bp = Blueprint("user_api", __name__, url_prefix="/api/user")

_PROFILE_ALIASES = {"fullName": "full_name"}


@bp.get("/profile")
@require_permission("profile.view")
def get_profile() -> ResponseReturnValue:
    current = require_session()
    data = UserRepo().get_dict(current["id"], with_permissions=True)
    if data is None:
        raise NotFoundError("Usuário não encontrado")
    return jsonify({"ok": True, "user": data})


@bp.patch("/profile")
@require_permission("profile.edit")
def update_profile() -> ResponseReturnValue:
    current = require_session()
    raw = sanitize_input(json_body())
    data = {_PROFILE_ALIASES.get(k, k): v for k, v in raw.items() if _PROFILE_ALIASES.get(k, k) in PROFILE_RULES}
    if not data:
        raise BadRequestError("Pelo menos um campo deve ser fornecido para atualização")
    if isinstance(data.get("username"), str):
        data["username"] = data["username"].lower()
    if isinstance(data.get("email"), str):
        data["email"] = data["email"].lower()
    ensure_valid(validate_partial(data, PROFILE_RULES))
    repo = UserRepo()
    errors = []
    if "username" in data and repo.username_taken(data["username"], exclude_id=current["id"]):
        errors.append({"field": "username", "message": "Nome de usuário já está em uso", "code": "DUPLICATE"})
    if "email" in data and repo.email_taken(data["email"], exclude_id=current["id"]):
        errors.append({"field": "email", "message": "Email já está em uso", "code": "DUPLICATE"})
    ensure_valid(errors)
    user = repo.update_user(current["id"], data)
    if user is None:
        raise NotFoundError("Usuário não encontrado")
    log_security_event(
        "admin_action",
        details={"action": "update_profile", "updated_fields": sorted(data)},
    )
    return jsonify({"ok": True, "user": UserRepo().get_dict(user.id, with_permissions=True), "message": "Perfil atualizado com sucesso"})


@bp.patch("/password")
@require_permission("profile.edit")
@rate_limit("change_password", quota=5, per_seconds=900)
def change_password() -> ResponseReturnValue:
    current = require_session()
    data = json_body()
    ensure_valid(validate_change_password(data))
    repo = UserRepo()
    user = repo.get(current["id"])
    if user is None:
        raise NotFoundError("Usuário não encontrado")
    if not verify_password(user.password_hash, data["currentPassword"]):
        log_security_event("admin_action", details={"action": "change_password", "result": "wrong_current_password"})
        raise ValidationError.single("currentPassword", "Senha atual incorreta", "INVALID_PASSWORD")
    repo.set_password(user.id, data["newPassword"])
    log_security_event("admin_action", details={"action": "change_password", "result": "success"})
    return jsonify({"ok": True, "message": "Senha alterada com sucesso"})
