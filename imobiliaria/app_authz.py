"""Authorization helpers.

`require_permission(*perms)` passes when the current user's role grants any
of the listed permissions. It authenticates first (SessionError -> 401) then
raises AuthzError (403) carrying the first required permission for the
problem body.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from .app_sessions import require_session
from .roles import has_any_permission

P = ParamSpec("P")
R = TypeVar("R")


class AuthzError(Exception):
    """Signals an authorization (403) failure to be caught by centralized handlers."""

    required: str | None

    def __init__(self, message: str = "forbidden", required: str | None = None):
        super().__init__(message)
        self.required = required


def require_permission(*permissions: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            user = require_session()
            if not has_any_permission(user["role"], permissions):
                raise AuthzError("Permissão insuficiente", required=permissions[0] if permissions else None)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


__all__ = ["AuthzError", "require_permission"]
