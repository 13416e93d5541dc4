"""Session (JWT) helpers.

The access token travels in the HttpOnly `auth-token` cookie or as an
`Authorization: Bearer` header. `require_session` resolves it to the active
user row and raises SessionError (401) otherwise.
"""
from __future__ import annotations

from typing import TypedDict

from flask import current_app, g, request

from .db import get_session
from .jwt_utils import JWTError, TokenExpiredError, decode
from .models import User


class CurrentUser(TypedDict):
    id: int
    username: str
    email: str
    full_name: str | None
    role: str
    is_active: bool


class SessionError(Exception):
    """Signals a 401 unauthorized due to missing/invalid token."""

    def __init__(self, message: str = "authentication required", reason: str = "missing"):
        super().__init__(message)
        self.reason = reason


def extract_token() -> str | None:
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth-token")
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(None, 1)[1].strip() or None
    return None


def decode_request_token(token: str):
    cfg = current_app.config
    return decode(
        token,
        secret=cfg.get("JWT_SECRET"),
        secrets_list=cfg.get("JWT_SECRETS") or [],
        issuer=cfg.get("JWT_ISSUER"),
        audience=cfg.get("JWT_AUDIENCE"),
        leeway=int(cfg.get("JWT_LEEWAY_SECONDS", 30)),
    )


def user_to_current(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        is_active=bool(user.is_active),
    )


def load_user_from_token(token: str) -> CurrentUser:
    """Decode + load the active user; raise SessionError with a reason on failure."""
    try:
        payload = decode_request_token(token)
    except TokenExpiredError as e:
        raise SessionError("Token expirado", reason="expired") from e
    except JWTError as e:
        raise SessionError("Token inválido", reason="invalid") from e
    db = get_session()
    try:
        user = db.get(User, int(payload["sub"]))
        if user is None or not user.is_active:
            raise SessionError("Usuário não encontrado ou inativo", reason="user_inactive")
        return user_to_current(user)
    finally:
        db.close()


def require_session() -> CurrentUser:
    if getattr(g, "current_user", None):
        return g.current_user
    token = extract_token()
    if not token:
        raise SessionError("Token de acesso requerido", reason="missing")
    try:
        user = load_user_from_token(token)
    except SessionError as e:
        from .security_logger import log_security_event  # local import to avoid cycle

        log_security_event("token_invalid", details={"reason": e.reason})
        raise
    g.current_user = user
    return user


__all__ = [
    "CurrentUser",
    "SessionError",
    "decode_request_token",
    "extract_token",
    "load_user_from_token",
    "require_session",
    "user_to_current",
]
