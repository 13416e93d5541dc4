"""Authentication endpoints: login, logout, verify, me.

Tokens are HS256 JWTs delivered in the HttpOnly `auth-token` cookie (and in
the body for API clients). Failed logins feed two independent mechanisms:
per-user `failed_attempts` / `locked_until` (423) and the IP / account
LoginThrottle (429).
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, make_response
from flask.typing import ResponseReturnValue

from . import metrics
from .app_sessions import decode_request_token, extract_token, require_session
from .cookies import clear_auth_cookies, set_secure_cookie
from .errors import AccountLockedError, BadRequestError
from .http_errors import too_many_requests, unauthorized
from .jwt_utils import JWTError, issue_access_token, select_signing_secret
from .models import as_utc, utcnow
from .passwords import verify_password
from .security_logger import log_security_event
from .throttling import LoginThrottle, client_ip, rate_limit_headers
from .user_repo import UserRepo, is_locked, user_to_dict
from .validation import json_body

bp = Blueprint("auth_api", __name__, url_prefix="/api/auth")

INVALID_CREDENTIALS = "Credenciais inválidas"


def _throttled(decision, username: str) -> ResponseReturnValue:
    log_security_event(
        "rate_limit_exceeded",
        username=username or None,
        details={"reason": "login_throttled", "scope": decision.scope, "retry_after": decision.retry_after},
    )
    resp = too_many_requests(
        detail="Muitas tentativas de login. Tente novamente mais tarde.",
        retry_after=max(1, decision.retry_after),
        scope=decision.scope,
    )
    for k, v in rate_limit_headers(decision).items():
        resp.headers[k] = v
    return resp


def _failed(throttle: LoginThrottle, ip: str, username: str, reason: str, **extra) -> ResponseReturnValue:
    decision = throttle.record_failure(ip, username)
    metrics.increment("auth.login.failed", {"reason": reason})
    log_security_event("login_failure", username=username, details={"reason": reason, **extra})
    resp = unauthorized(detail=INVALID_CREDENTIALS)
    for k, v in rate_limit_headers(decision).items():
        if k != "Retry-After":
            resp.headers[k] = v
    return resp


@bp.post("/login")
def login() -> ResponseReturnValue:
    data = json_body()
    raw_username = data.get("username")
    password = data.get("password")
    if not isinstance(raw_username, str) or not isinstance(password, str) or not raw_username.strip() or not password:
        raise BadRequestError("Username e senha são obrigatórios")
    username = raw_username.strip().lower()
    if len(username) > 50 or len(password) > 128:
        raise BadRequestError("Dados de entrada inválidos")

    ip = client_ip()
    log_security_event("login_attempt", username=username)
    throttle = LoginThrottle.from_app()
    decision = throttle.check(ip, username)
    if not decision.allowed:
        return _throttled(decision, username)

    repo = UserRepo()
    user = repo.find_for_login(username)
    if user is None:
        return _failed(throttle, ip, username, "user_not_found")
    if not user.is_active:
        return _failed(throttle, ip, username, "user_inactive")
    if is_locked(user):
        until = as_utc(user.locked_until)
        log_security_event("login_failure", user_id=user.id, username=user.username, details={"reason": "account_locked"})
        raise AccountLockedError(until, int((until - utcnow()).total_seconds()))

    if not verify_password(user.password_hash, password):
        cfg = current_app.config
        attempts, locked_until = repo.record_failed_login(
            user.id,
            max_attempts=int(cfg.get("MAX_LOGIN_ATTEMPTS", 3)),
            lock_minutes=int(cfg.get("ACCOUNT_LOCK_MINUTES", 30)),
        )
        if locked_until is not None:
            metrics.increment("auth.account.locked")
        return _failed(
            throttle,
            ip,
            user.username,
            "invalid_password",
            failed_attempts=attempts,
            account_locked=locked_until is not None,
        )

    repo.record_successful_login(user.id)
    throttle.reset(ip, username)
    if username != user.username:
        throttle.reset(ip, user.username)
    cfg = current_app.config
    ttl = int(cfg.get("JWT_EXPIRES_IN", 3600))
    token, _payload = issue_access_token(
        user_id=user.id,
        username=user.username,
        role=user.role,
        secret=select_signing_secret(cfg.get("JWT_SECRET"), cfg.get("JWT_SECRETS") or []),
        ttl=ttl,
        issuer=cfg.get("JWT_ISSUER", "imobiliaria"),
        audience=cfg.get("JWT_AUDIENCE", "api"),
    )
    log_security_event("login_success", user_id=user.id, username=user.username, details={"role": user.role})
    metrics.increment("auth.login.success")
    fresh = repo.get(user.id) or user
    resp = make_response(
        jsonify(
            {
                "ok": True,
                "message": "Login realizado com sucesso",
                "user": user_to_dict(fresh, with_permissions=True),
                "token": token,
                "token_type": "Bearer",
                "expires_in": ttl,
            }
        )
    )
    set_secure_cookie(resp, cfg.get("AUTH_COOKIE_NAME", "auth-token"), token, max_age=ttl)
    for k, v in rate_limit_headers(throttle.check(ip, user.username)).items():
        resp.headers[k] = v
    return resp


@bp.post("/logout")
def logout() -> ResponseReturnValue:
    token = extract_token()
    if not token:
        log_security_event("logout", details={"reason": "no_token_provided"})
    else:
        try:
            payload = decode_request_token(token)
            log_security_event(
                "logout",
                user_id=payload["sub"],
                username=payload["username"],
                details={"reason": "user_initiated"},
            )
        except JWTError:
            log_security_event("logout", details={"reason": "invalid_token"})
    resp = make_response(jsonify({"ok": True, "message": "Logout realizado com sucesso"}))
    clear_auth_cookies(resp)
    return resp


@bp.get("/verify")
def verify() -> ResponseReturnValue:
    user = require_session()
    return jsonify({"ok": True, "valid": True, "user": user})


@bp.get("/me")
def me() -> ResponseReturnValue:
    current = require_session()
    data = UserRepo().get_dict(current["id"], with_permissions=True)
    return jsonify({"ok": True, "user": data})
