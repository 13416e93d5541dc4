"""Security middleware: response headers + CORS allow-list.

CSRF protection comes from the auth cookie itself (HttpOnly, SameSite=Strict)
so there is no token round-trip here.
"""

from __future__ import annotations

from flask import Flask, make_response, request


def _validate_cors(app: Flask, resp):  # pragma: no cover - exercised indirectly
    allowed: list[str] = app.config.get("CORS_ALLOWED_ORIGINS", []) or []
    if not allowed:
        return resp
    origin = request.headers.get("Origin")
    if not origin or origin not in allowed:
        return resp
    resp.headers.setdefault("Vary", "Origin")
    resp.headers["Access-Control-Allow-Origin"] = origin
    resp.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
    req_hdrs = request.headers.get("Access-Control-Request-Headers")
    resp.headers["Access-Control-Allow-Headers"] = req_hdrs or "Content-Type, Authorization, X-Request-Id"
    resp.headers["Access-Control-Allow-Credentials"] = "true"
    resp.headers["Access-Control-Max-Age"] = "600"
    return resp


def init_security(app: Flask):
    @app.after_request
    def _security_after_request(resp):  # pragma: no cover - coverage via tests
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("X-XSS-Protection", "1; mode=block")
        resp.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        resp.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        if not app.config.get("TESTING") and not app.config.get("DEBUG"):
            resp.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        resp.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; img-src 'self' data:; object-src 'none'; frame-ancestors 'none'",
        )
        return _validate_cors(app, resp)

    # Handle preflight quickly
    @app.route("/", methods=["OPTIONS"], defaults={"path": ""})
    @app.route("/<path:path>", methods=["OPTIONS"])
    def _cors_preflight(path=""):  # pragma: no cover - simple
        resp = make_response("", 204)
        return _validate_cors(app, resp)

    return app


__all__ = ["init_security"]
