"""Domain error system + RFC7807 handler registration.

Handlers raise DomainError subclasses; `register_error_handlers` maps them
(and session / authz / rate-limit / pagination errors) to problem+json.
"""
from __future__ import annotations

import traceback
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from flask import request
from werkzeug.wrappers.response import Response

from .app_authz import AuthzError
from .app_sessions import SessionError
from .http_errors import (
    bad_request,
    conflict,
    forbidden,
    internal_server_error,
    locked,
    not_found,
    payload_too_large,
    too_many_requests,
    unauthorized,
    unprocessable_entity,
)
from .pagination import PaginationError
from .rate_limiter import RateLimitError
from .security_logger import log_security_event


class DomainError(Exception):
    def __init__(self, status: int, code: str, detail: str | None = None, **extra: Any):
        self.status = status
        self.code = code
        self.detail = detail or code
        self.extra = extra
        super().__init__(self.detail)


class ValidationError(DomainError):
    """422 with `errors`: list of {field, message, code}."""

    def __init__(self, errors: list[dict[str, str]], detail: str = "Dados inválidos", **extra: Any):
        super().__init__(422, "validation_error", detail, errors=errors, **extra)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str, code: str = "INVALID_FORMAT") -> ValidationError:
        return cls([{"field": field, "message": message, "code": code}], detail=message)


class NotFoundError(DomainError):
    def __init__(self, detail: str = "Recurso não encontrado", **extra: Any):
        super().__init__(404, "not_found", detail, **extra)


class ConflictError(DomainError):
    def __init__(self, detail: str = "conflict", **extra: Any):
        super().__init__(409, "conflict", detail, **extra)


class BadRequestError(DomainError):
    def __init__(self, detail: str = "bad_request", **extra: Any):
        super().__init__(400, "bad_request", detail, **extra)


class AccountLockedError(DomainError):
    def __init__(self, locked_until: datetime, retry_after: int, detail: str | None = None):
        super().__init__(
            423,
            "account_locked",
            detail or "Conta bloqueada temporariamente devido a múltiplas tentativas de login falhadas",
            locked_until=locked_until.isoformat(),
            retry_after=max(1, retry_after),
        )


_STATUS_HELPERS: dict[int, Callable[..., Response]] = {
    400: bad_request,
    401: unauthorized,
    403: forbidden,
    404: not_found,
    409: conflict,
    413: payload_too_large,
    429: too_many_requests,
}


def register_error_handlers(app: Any) -> None:  # pragma: no cover - integration path
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(SessionError)
    def _h_session(err: SessionError) -> Response:
        return unauthorized(detail=str(err) or "authentication_required", www_auth="Bearer")

    @app.errorhandler(AuthzError)
    def _h_authz(err: AuthzError) -> Response:
        required = getattr(err, "required", None)
        log_security_event(
            "unauthorized_access",
            details={"reason": "insufficient_permissions", "required_permission": required},
        )
        extra = {"required_permission": required} if required else {}
        return forbidden(detail=str(err) or "forbidden", **extra)

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        if err.status == 422:
            rest = {k: v for k, v in err.extra.items() if k != "errors"}
            return unprocessable_entity(err.extra.get("errors") or [], detail=err.detail, **rest)
        if err.status == 423:
            rest = {k: v for k, v in err.extra.items() if k != "retry_after"}
            return locked(detail=err.detail, retry_after=err.extra.get("retry_after"), **rest)
        helper = _STATUS_HELPERS.get(err.status)
        if helper:
            return helper(detail=err.detail, **err.extra)
        return bad_request(detail=err.detail, **err.extra)

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        helper = _STATUS_HELPERS.get(status)
        if helper:
            return helper(detail=ex.description)
        if status >= 500:
            return internal_server_error()
        from .http_errors import problem

        return problem(status, "about:blank", ex.name, str(ex.description))

    @app.errorhandler(RateLimitError)  # type: ignore[arg-type]
    def _h_rate_limit(ex: RateLimitError) -> Response:
        log_security_event("rate_limit_exceeded", details={"limit": ex.limit, "retry_after": ex.retry_after})
        return too_many_requests(detail="Muitas requisições. Tente novamente mais tarde.", retry_after=ex.retry_after, limit=ex.limit)

    @app.errorhandler(PaginationError)
    def _h_pagination(err: PaginationError) -> Response:
        return bad_request(detail=str(err) or "bad_request")

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        app.logger.error("Unhandled exception incident_id=%s path=%s\n%s", incident_id, request.path, traceback.format_exc())
        try:
            log_security_event(
                "system_error",
                details={"incident_id": incident_id, "error": type(ex).__name__},
            )
        except Exception:
            app.logger.exception("Failed to record system_error for incident %s", incident_id)
        return internal_server_error(incident_id=incident_id)


__all__ = [
    "AccountLockedError",
    "BadRequestError",
    "ConflictError",
    "DomainError",
    "NotFoundError",
    "ValidationError",
    "register_error_handlers",
]
