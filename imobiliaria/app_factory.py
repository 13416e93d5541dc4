"""Flask application factory.

Provides:
 - App factory with configuration override (lowercase keys map onto Config,
   uppercase keys are copied straight into app.config)
 - DB engine initialization
 - RFC7807 problem+json error handling
 - Request id + structured request log line
 - Blueprint registration (auth, user, admin, cidades, clientes, imoveis,
   notificacoes, public catalogue, audit logs, health)
 - Uploaded image serving under /uploads/
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request, send_from_directory
from werkzeug.wrappers.response import Response

from . import rate_limiter
from .admin_users_api import bp as admin_users_bp
from .audit_api import bp as audit_bp
from .auth_api import bp as auth_bp
from .cidades_api import bp as cidades_bp
from .clientes_api import bp as clientes_bp
from .contratos_api import bp as contratos_bp
from .config import Config
from .db import init_engine, remove_session
from .errors import register_error_handlers
from .health_api import bp as health_bp
from .images import upload_root
from .imoveis_api import bp as imoveis_bp
from .logging_setup import configure_logging, install_support_log_handler
from .metrics import set_metrics
from .metrics_logging import LoggingMetrics
from .notificacoes_api import bp as notificacoes_bp
from .pagamentos_api import bp as pagamentos_bp
from .public_api import bp as public_bp
from .security import init_security
from .security_logger import get_security_logger
from .user_api import bp as user_bp


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # also allow direct Flask config keys
            if k.isupper():
                app.config[k] = v

    # --- DB setup ---
    init_engine(app.config["SQLALCHEMY_DATABASE_URI"], force=bool(app.config.get("FORCE_DB_REINIT")))

    # --- Logging ---
    log = configure_logging(app.config.get("LOG_LEVEL", "INFO"))
    req_log = logging.getLogger("imobiliaria.request")
    install_support_log_handler()

    # --- Metrics backend wiring ---
    if (app.config.get("METRICS_BACKEND") or "noop") == "log":
        set_metrics(LoggingMetrics())
        log.info("Metrics backend initialized: log")

    # --- Rate limiter backend ---
    rate_limiter.configure(app.config.get("RATE_LIMIT_BACKEND") or "memory")

    # --- Security middleware (CORS, headers) + errors ---
    init_security(app)
    register_error_handlers(app)

    # Build the security logger eagerly so stats survive the first request
    with app.app_context():
        get_security_logger()

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if request.path.startswith("/api/") and "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        user = getattr(g, "current_user", None)
        req_log.info(
            {
                "request_id": rid,
                "user_id": user["id"] if user else None,
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
            }
        )
        return resp

    @app.teardown_appcontext
    def _remove_session(_exc: BaseException | None) -> None:
        remove_session()

    # --- Register blueprints ---
    app.register_blueprint(auth_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(admin_users_bp)
    app.register_blueprint(cidades_bp)
    app.register_blueprint(clientes_bp)
    app.register_blueprint(imoveis_bp)
    app.register_blueprint(contratos_bp)
    app.register_blueprint(pagamentos_bp)
    app.register_blueprint(notificacoes_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(health_bp)

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename: str) -> Response:
        return send_from_directory(upload_root(), filename)

    app.logger.info("imobiliaria app created (db=%s)", _safe_db_label(app.config["SQLALCHEMY_DATABASE_URI"]))
    return app


def _safe_db_label(url: str) -> str:
    # Never log credentials
    if "@" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return url if url.startswith("sqlite") else os.path.basename(url)
