from __future__ import annotations

from flask import Response, current_app

REFRESH_COOKIE_NAME = "refresh-token"


def _secure_flag() -> bool:
    return not (current_app.config.get("DEBUG") or current_app.config.get("TESTING"))


def set_secure_cookie(
    resp: Response,
    name: str,
    value: str,
    *,
    httponly: bool = True,
    samesite: str = "Strict",
    max_age: int | None = None,
    path: str = "/",
) -> None:
    """Set a cookie with security-oriented defaults.

    Secure flag is enabled unless DEBUG/TESTING; this keeps local dev convenient.
    """
    resp.set_cookie(
        name,
        value,
        secure=_secure_flag(),
        httponly=httponly,
        samesite=samesite,
        max_age=max_age,
        path=path,
    )


def clear_auth_cookies(resp: Response) -> None:
    """Expire the auth and refresh cookies (Max-Age=0) with the same attributes they were set with."""
    for name in (current_app.config.get("AUTH_COOKIE_NAME", "auth-token"), REFRESH_COOKIE_NAME):
        set_secure_cookie(resp, name, "", max_age=0)


__all__ = ["set_secure_cookie", "clear_auth_cookies", "REFRESH_COOKIE_NAME"]
