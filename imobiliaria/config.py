from __future__ import annotations

import json
import os
from dataclasses import dataclass, field


def _limit_from_env(name: str, default: dict[str, int]) -> dict[str, int]:
    raw = os.getenv(name)
    if not raw:
        return dict(default)
    try:
        parsed = json.loads(raw)
    except ValueError:
        return dict(default)
    if not isinstance(parsed, dict):
        return dict(default)
    merged = dict(default)
    for k in ("quota", "per_seconds", "block_seconds"):
        if k in parsed:
            merged[k] = max(1, int(parsed[k]))
    return merged


DEFAULT_IP_LIMIT = {"quota": 5, "per_seconds": 900, "block_seconds": 900}
DEFAULT_ACCOUNT_LIMIT = {"quota": 3, "per_seconds": 1800, "block_seconds": 1800}


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///dev.db"
    cors_allowed_origins: list[str] = field(default_factory=list)
    jwt_secret: str = "dev-secret"
    jwt_secrets: list[str] = field(default_factory=list)  # first element used for signing; all accepted for verification
    jwt_issuer: str = "imobiliaria"
    jwt_audience: str = "api"
    jwt_expires_in: int = 3600  # 1h
    jwt_leeway_seconds: int = 30
    auth_cookie_name: str = "auth-token"
    max_login_attempts: int = 3
    account_lock_minutes: int = 30
    login_ip_limit: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_IP_LIMIT))
    login_account_limit: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ACCOUNT_LIMIT))
    rate_limit_backend: str = "memory"
    upload_folder: str = ""
    metrics_backend: str = "noop"
    security_log_persist: bool = True
    audit_retention_days: int = 90
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        cors = os.getenv("CORS_ALLOW_ORIGINS", "")
        jwt_multi = os.getenv("JWT_SECRETS", "")
        # JWT_SECRETS allows key rotation: comma-separated secrets; first used for signing.
        jwt_list = [s for s in [j.strip() for j in jwt_multi.split(",")] if s]
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///dev.db"),
            cors_allowed_origins=[o for o in [c.strip() for c in cors.split(",")] if o],
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
            jwt_secrets=jwt_list,
            jwt_issuer=os.getenv("JWT_ISSUER", "imobiliaria"),
            jwt_audience=os.getenv("JWT_AUDIENCE", "api"),
            jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", "3600")),
            jwt_leeway_seconds=int(os.getenv("JWT_LEEWAY_SECONDS", "30")),
            auth_cookie_name=os.getenv("AUTH_COOKIE_NAME", "auth-token"),
            max_login_attempts=int(os.getenv("MAX_LOGIN_ATTEMPTS", "3")),
            account_lock_minutes=int(os.getenv("ACCOUNT_LOCK_MINUTES", "30")),
            login_ip_limit=_limit_from_env("LOGIN_IP_LIMIT", DEFAULT_IP_LIMIT),
            login_account_limit=_limit_from_env("LOGIN_ACCOUNT_LIMIT", DEFAULT_ACCOUNT_LIMIT),
            rate_limit_backend=os.getenv("RATE_LIMIT_BACKEND", "memory").strip().lower() or "memory",
            upload_folder=os.getenv("UPLOAD_FOLDER", ""),
            metrics_backend=os.getenv("METRICS_BACKEND", "noop"),
            security_log_persist=os.getenv("SECURITY_LOG_PERSIST", "1").lower() in ("1", "true", "yes"),
            audit_retention_days=int(os.getenv("AUDIT_RETENTION_DAYS", "90")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "CORS_ALLOWED_ORIGINS": self.cors_allowed_origins,
            "JWT_SECRET": self.jwt_secret,
            "JWT_SECRETS": self.jwt_secrets,
            "JWT_ISSUER": self.jwt_issuer,
            "JWT_AUDIENCE": self.jwt_audience,
            "JWT_EXPIRES_IN": self.jwt_expires_in,
            "JWT_LEEWAY_SECONDS": self.jwt_leeway_seconds,
            "AUTH_COOKIE_NAME": self.auth_cookie_name,
            "MAX_LOGIN_ATTEMPTS": self.max_login_attempts,
            "ACCOUNT_LOCK_MINUTES": self.account_lock_minutes,
            "LOGIN_IP_LIMIT": self.login_ip_limit,
            "LOGIN_ACCOUNT_LIMIT": self.login_account_limit,
            "RATE_LIMIT_BACKEND": self.rate_limit_backend,
            "UPLOAD_FOLDER": self.upload_folder,
            "METRICS_BACKEND": self.metrics_backend,
            "SECURITY_LOG_PERSIST": self.security_log_persist,
            "AUDIT_RETENTION_DAYS": self.audit_retention_days,
            "LOG_LEVEL": self.log_level,
            # Uploads larger than 10 files x 5MB are rejected by werkzeug before parsing
            "MAX_CONTENT_LENGTH": 55 * 1024 * 1024,
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
        }
