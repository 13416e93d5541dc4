"""Password hashing and strength rules."""

from __future__ import annotations

import re
import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

MIN_LENGTH = 8
MAX_LENGTH = 128
SPECIAL_CHARS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
COMMON_PREFIXES = ("password", "123456", "admin", "qwerty", "letmein")

_REPEATED = re.compile(r"(.)\1{2,}")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or not password:
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # Unknown hash method stored in the row
        return False


def validate_password_strength(password: str) -> list[str]:
    """Return human-readable problems; empty list means the password is acceptable."""
    errors: list[str] = []
    if len(password) < MIN_LENGTH:
        errors.append(f"A senha deve ter pelo menos {MIN_LENGTH} caracteres")
    if len(password) > MAX_LENGTH:
        errors.append(f"A senha deve ter no máximo {MAX_LENGTH} caracteres")
    if not re.search(r"[a-z]", password):
        errors.append("A senha deve conter pelo menos uma letra minúscula")
    if not re.search(r"[A-Z]", password):
        errors.append("A senha deve conter pelo menos uma letra maiúscula")
    if not re.search(r"\d", password):
        errors.append("A senha deve conter pelo menos um número")
    if not any(c in SPECIAL_CHARS for c in password):
        errors.append("A senha deve conter pelo menos um caractere especial")
    lowered = password.lower()
    if any(lowered.startswith(p) for p in COMMON_PREFIXES):
        errors.append("A senha não pode começar com sequências comuns")
    if _REPEATED.search(password):
        errors.append("A senha não pode conter caracteres repetidos em sequência")
    return errors


def is_strong_password(password: str) -> bool:
    return not validate_password_strength(password)


def generate_secure_password(length: int = 16) -> str:
    if length < MIN_LENGTH:
        length = MIN_LENGTH
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, "!@#$%^&*"]
    alphabet = "".join(pools)
    while True:
        chars = [secrets.choice(p) for p in pools]
        chars += [secrets.choice(alphabet) for _ in range(length - len(pools))]
        secrets.SystemRandom().shuffle(chars)
        candidate = "".join(chars)
        if is_strong_password(candidate):
            return candidate
