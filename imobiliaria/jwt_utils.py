from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import Any, TypedDict

"""JWT utilities.

HS256 access tokens for the admin backend:
 - Claims: sub (user id), username, role, iat, exp, jti, iss, aud (nbf optional).
 - Rotation: every secret in JWT_SECRETS verifies; the first (or JWT_SECRET) signs.
 - Expired tokens raise TokenExpiredError so callers can tell "expired" from "invalid".
"""


class JWTError(Exception):
    pass


class TokenExpiredError(JWTError):
    pass


DEFAULT_ACCESS_TTL = 3600  # 1h
SKEW_SECS = 30

ALG_HS256 = "HS256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)


def _sign(msg: bytes, secret: str) -> str:
    sig = hmac.new(secret.encode(), msg, hashlib.sha256).digest()
    return _b64url(sig)


def generate_jti() -> str:
    return secrets.token_hex(16)


def key_id(secret: str) -> str:
    return hashlib.sha256(secret.encode()).hexdigest()[:8]


def encode(payload: dict[str, Any], *, secret: str, ttl: int = DEFAULT_ACCESS_TTL, kid: str | None = None) -> str:
    now = int(time.time())
    header = {"alg": ALG_HS256, "typ": "JWT"}
    if kid:
        header["kid"] = kid
    pl = payload.copy()
    pl.setdefault("iat", now)
    pl.setdefault("exp", now + ttl)
    header_b = _b64url(json.dumps(header, separators=(",", ":")).encode())
    payload_b = _b64url(json.dumps(pl, separators=(",", ":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    sig = _sign(msg, secret)
    return f"{header_b}.{payload_b}.{sig}"


class AccessTokenPayload(TypedDict):
    sub: int
    username: str
    role: str
    jti: str
    iat: int
    exp: int
    iss: str


def decode(
    token: str,
    *,
    secret: str | None = None,
    secrets_list: list[str] | None = None,
    verify_exp: bool = True,
    issuer: str | None = None,
    audience: str | None = None,
    leeway: int = SKEW_SECS,
) -> AccessTokenPayload:
    try:
        header_b, payload_b, sig = token.split(".")
    except ValueError as e:
        raise JWTError("malformed token") from e
    msg = f"{header_b}.{payload_b}".encode()
    try:
        header_raw = json.loads(_b64url_decode(header_b))
    except ValueError as e:
        raise JWTError("bad header") from e
    if not isinstance(header_raw, dict):
        raise JWTError("bad header type")
    if header_raw.get("alg") != ALG_HS256:
        raise JWTError("alg")
    secrets_to_try: list[str] = []
    if secret:
        secrets_to_try.append(secret)
    for s in secrets_list or []:
        if s and s not in secrets_to_try:
            secrets_to_try.append(s)
    if not secrets_to_try:
        raise JWTError("no verification secret")
    # Try the kid-matching secret first, then the rest
    kid = header_raw.get("kid")
    if kid:
        secrets_to_try.sort(key=lambda s: key_id(s) != kid)
    for sec in secrets_to_try:
        if hmac.compare_digest(_sign(msg, sec), sig):
            break
    else:
        raise JWTError("bad signature")
    try:
        raw = json.loads(_b64url_decode(payload_b))
    except ValueError as e:
        raise JWTError("bad payload") from e
    if not isinstance(raw, dict):
        raise JWTError("bad payload type")

    def _req(key: str, t: type) -> Any:
        if key not in raw:
            raise JWTError(f"missing claim {key}")
        val = raw[key]
        if not isinstance(val, t) or isinstance(val, bool):
            raise JWTError(f"bad claim type {key}")
        return val

    sub = _req("sub", int)
    username = _req("username", str)
    role = _req("role", str)
    iat = _req("iat", int)
    exp = _req("exp", int)
    jti = raw.get("jti") or ""
    iss_val = raw.get("iss") or "imobiliaria"
    nbf_val = raw.get("nbf")
    if nbf_val is not None and not isinstance(nbf_val, int):
        raise JWTError("nbf")
    now = int(time.time())
    if verify_exp:
        if now > exp + leeway:
            raise TokenExpiredError("token expired")
        if nbf_val is not None and now + leeway < nbf_val:
            raise JWTError("token not yet valid")
        if iat > now + leeway:
            raise JWTError("iat_future")
    if issuer and iss_val != issuer:
        raise JWTError("iss")
    if audience:
        aud_val = raw.get("aud")
        if isinstance(aud_val, str):
            ok = aud_val == audience
        elif isinstance(aud_val, list):
            ok = audience in aud_val
        else:
            ok = False
        if not ok:
            raise JWTError("aud")
    return AccessTokenPayload(sub=sub, username=username, role=role, jti=jti, iat=iat, exp=exp, iss=iss_val)


def issue_access_token(
    *,
    user_id: int,
    username: str,
    role: str,
    secret: str,
    ttl: int = DEFAULT_ACCESS_TTL,
    issuer: str = "imobiliaria",
    audience: str = "api",
) -> tuple[str, AccessTokenPayload]:
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": user_id,
        "username": username,
        "role": role,
        "jti": generate_jti(),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + ttl,
    }
    token = encode(payload, secret=secret, ttl=ttl, kid=key_id(secret))
    return token, AccessTokenPayload(
        sub=user_id, username=username, role=role, jti=payload["jti"], iat=now, exp=now + ttl, iss=issuer
    )


def select_signing_secret(primary: str | None, candidates: list[str] | None) -> str:
    """Return the first rotation candidate, else the primary secret; raise if none.

    JWT_SECRETS (when set) wins so rotating keys never needs JWT_SECRET edits.
    """
    if candidates:
        for c in candidates:
            if c:
                return c
    if primary:
        return primary
    raise JWTError("no signing secret available")
