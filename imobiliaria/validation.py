"""Rule-driven payload validation.

A `Rule` describes one field; `validate_object` runs a rule set over a
payload and returns a list of `{field, message, code}` errors (empty when
valid). `validate_partial` only checks the keys present, for updates.
Routes turn a non-empty list into ValidationError (422) via `ensure_valid`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, TypedDict

from flask import request

from .errors import BadRequestError, ValidationError
from .passwords import validate_password_strength
from .roles import ROLES


class FieldError(TypedDict):
    field: str
    message: str
    code: str


MESSAGES = {
    "required": "Este campo é obrigatório",
    "min_length": "Deve ter pelo menos {n} caracteres",
    "max_length": "Deve ter no máximo {n} caracteres",
    "min": "Valor mínimo é {n}",
    "max": "Valor máximo é {n}",
    "email": "Email inválido",
    "pattern": "Formato inválido",
    "unique": "Este valor já está em uso",
    "choices": "Deve ser um dos valores: {values}",
    "number": "Deve ser um número válido",
    "date": "Data inválida (use AAAA-MM-DD)",
}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\(\d{2}\)\s\d{4,5}-\d{4}$")
CPF_CNPJ_RE = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$|^\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

TIPOS_IMOVEL = ("Apartamento", "Casa", "Terreno", "Chácara", "Sítio", "Fazenda")
FINALIDADES = ("venda", "aluguel", "ambos")

NOTIFICACAO_TIPOS = ("vencimento_proximo", "pagamento_atrasado", "contrato_vencendo", "lembrete_cobranca")
NOTIFICACAO_STATUS = ("pendente", "enviada", "lida", "cancelada")
NOTIFICACAO_PRIORIDADES = ("baixa", "media", "alta", "urgente")

CONTRATO_STATUS = ("ativo", "encerrado", "suspenso")
PAGAMENTO_STATUS = ("pendente", "pago", "atrasado", "cancelado")


@dataclass(frozen=True)
class Rule:
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None
    pattern: re.Pattern[str] | None = None
    kind: str | None = None  # email | number | integer | boolean | list | date
    choices: tuple[Any, ...] | None = None


def _err(field: str, message: str, code: str) -> FieldError:
    return FieldError(field=field, message=message, code=code)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _fmt(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else str(n)


def validate_field(name: str, value: Any, rule: Rule, existing: Iterable[Any] | None = None) -> list[FieldError]:
    if _is_empty(value):
        return [_err(name, MESSAGES["required"], "REQUIRED")] if rule.required else []

    errors: list[FieldError] = []
    if rule.kind == "email":
        if not isinstance(value, str) or not EMAIL_RE.match(value):
            errors.append(_err(name, MESSAGES["email"], "INVALID_EMAIL"))
    elif rule.kind in ("number", "integer"):
        num = _as_number(value)
        if num is None or (rule.kind == "integer" and not num.is_integer()):
            return [_err(name, MESSAGES["number"], "INVALID_NUMBER")]
    elif rule.kind == "boolean":
        if not isinstance(value, bool):
            errors.append(_err(name, MESSAGES["pattern"], "INVALID_FORMAT"))
    elif rule.kind == "list":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            errors.append(_err(name, MESSAGES["pattern"], "INVALID_FORMAT"))
    elif rule.kind == "date":
        if parse_date(value) is None:
            return [_err(name, MESSAGES["date"], "INVALID_DATE")]

    has_length_rule = rule.min_length is not None or rule.max_length is not None
    if (rule.pattern is not None or has_length_rule) and not isinstance(value, str):
        errors.append(_err(name, MESSAGES["pattern"], "INVALID_FORMAT"))
        return errors

    if rule.pattern is not None and not rule.pattern.match(value):
        errors.append(_err(name, MESSAGES["pattern"], "INVALID_FORMAT"))
    if rule.min_length is not None and len(value) < rule.min_length:
        errors.append(_err(name, MESSAGES["min_length"].format(n=rule.min_length), "MIN_LENGTH"))
    if rule.max_length is not None and len(value) > rule.max_length:
        errors.append(_err(name, MESSAGES["max_length"].format(n=rule.max_length), "MAX_LENGTH"))

    if rule.min is not None or rule.max is not None:
        num = _as_number(value)
        if num is None:
            errors.append(_err(name, MESSAGES["number"], "INVALID_NUMBER"))
        else:
            if rule.min is not None and num < rule.min:
                errors.append(_err(name, MESSAGES["min"].format(n=_fmt(rule.min)), "MIN_VALUE"))
            if rule.max is not None and num > rule.max:
                errors.append(_err(name, MESSAGES["max"].format(n=_fmt(rule.max)), "MAX_VALUE"))

    if rule.choices is not None and value not in rule.choices:
        values = ", ".join(str(c) for c in rule.choices)
        errors.append(_err(name, MESSAGES["choices"].format(values=values), "INVALID_OPTION"))

    if existing is not None and value in set(existing):
        errors.append(_err(name, MESSAGES["unique"], "DUPLICATE"))
    return errors


def validate_object(
    data: Mapping[str, Any],
    rules: Mapping[str, Rule],
    existing: Mapping[str, Iterable[Any]] | None = None,
) -> list[FieldError]:
    errors: list[FieldError] = []
    for name, rule in rules.items():
        errors.extend(validate_field(name, data.get(name), rule, (existing or {}).get(name)))
    return errors


def validate_partial(
    data: Mapping[str, Any],
    rules: Mapping[str, Rule],
    existing: Mapping[str, Iterable[Any]] | None = None,
) -> list[FieldError]:
    """Like validate_object but only for keys present in `data` (PUT/PATCH semantics)."""
    present = {k: r for k, r in rules.items() if k in data}
    return validate_object(data, present, existing)


def sanitize_input(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return [sanitize_input(v) for v in value]
    if isinstance(value, dict):
        return {k: sanitize_input(v) for k, v in value.items()}
    return value


def ensure_valid(errors: list[FieldError], detail: str = "Dados inválidos") -> None:
    if errors:
        raise ValidationError(list(errors), detail=detail)


def as_int(value: Any) -> int:
    """Integer from an already validated value; accepts "2" and "2.0" alike."""
    if isinstance(value, str):
        return int(float(value))
    return int(value)


def json_body() -> dict[str, Any]:
    """Request JSON as a dict. Missing or empty body gives {}; arrays and scalars are rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequestError("Corpo da requisição deve ser um objeto JSON")
    return data


def group_by_field(errors: Iterable[FieldError]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for e in errors:
        grouped.setdefault(e["field"], []).append(e["message"])
    return grouped


# ---- Rule sets -----------------------------------------------------------------

CLIENTE_RULES: dict[str, Rule] = {
    "nome": Rule(required=True, min_length=2, max_length=255),
    "email": Rule(kind="email", max_length=255),
    "telefone": Rule(pattern=PHONE_RE),
    "cpf_cnpj": Rule(pattern=CPF_CNPJ_RE),
    "endereco": Rule(max_length=1000),
    "observacoes": Rule(max_length=2000),
}

IMOVEL_RULES: dict[str, Rule] = {
    "nome": Rule(required=True, min_length=5, max_length=255),
    "tipo": Rule(required=True, choices=TIPOS_IMOVEL),
    "finalidade": Rule(required=True, choices=FINALIDADES),
    "valor_venda": Rule(kind="number", min=0),
    "valor_aluguel": Rule(kind="number", min=0),
    "quartos": Rule(kind="integer", min=0, max=20),
    "banheiros": Rule(kind="integer", min=0, max=20),
    "area_total": Rule(kind="number", min=1),
    "caracteristicas": Rule(kind="list"),
    "comodidades": Rule(kind="list"),
    "destaque": Rule(kind="boolean"),
    "ativo": Rule(kind="boolean"),
    "cidade_id": Rule(kind="integer", min=1),
    "cliente_id": Rule(kind="integer", min=1),
    "bairro": Rule(max_length=255),
    "descricao": Rule(max_length=5000),
    "endereco_completo": Rule(max_length=500),
}

CIDADE_RULES: dict[str, Rule] = {
    "nome": Rule(required=True, min_length=2, max_length=255),
    "ativa": Rule(kind="boolean"),
}

USER_RULES: dict[str, Rule] = {
    "username": Rule(required=True, min_length=3, max_length=50, pattern=USERNAME_RE),
    "email": Rule(required=True, kind="email", max_length=255),
    "password": Rule(required=True, min_length=8, max_length=128),
    "full_name": Rule(required=True, min_length=2, max_length=100),
    "role": Rule(choices=ROLES),
}

PROFILE_RULES: dict[str, Rule] = {
    "full_name": Rule(required=True, min_length=2, max_length=100),
    "username": Rule(required=True, min_length=3, max_length=50, pattern=USERNAME_RE),
    "email": Rule(required=True, kind="email", max_length=255),
}

ADMIN_USER_UPDATE_RULES: dict[str, Rule] = {
    **PROFILE_RULES,
    "is_active": Rule(required=True, kind="boolean"),
    "role": Rule(required=True, choices=ROLES),
}

NOTIFICACAO_RULES: dict[str, Rule] = {
    "tipo": Rule(required=True, choices=NOTIFICACAO_TIPOS),
    "titulo": Rule(required=True, min_length=1, max_length=255),
    "mensagem": Rule(required=True, min_length=1, max_length=5000),
    "prioridade": Rule(required=True, choices=NOTIFICACAO_PRIORIDADES),
    "contrato_id": Rule(max_length=64),
    "pagamento_id": Rule(max_length=64),
}

CONFIGURACAO_NOTIFICACAO_RULES: dict[str, Rule] = {
    "dias_aviso_vencimento": Rule(kind="integer", min=0, max=30),
    "dias_lembrete_atraso": Rule(kind="integer", min=1, max=30),
    "max_lembretes_atraso": Rule(kind="integer", min=1, max=10),
    "dias_aviso_contrato_vencendo": Rule(kind="integer", min=1, max=90),
    "notificar_vencimento_proximo": Rule(kind="boolean"),
    "notificar_pagamento_atrasado": Rule(kind="boolean"),
    "notificar_contrato_vencendo": Rule(kind="boolean"),
    "ativo": Rule(kind="boolean"),
}


CONTRATO_RULES: dict[str, Rule] = {
    "imovel_id": Rule(required=True, kind="integer", min=1),
    "inquilino_id": Rule(required=True, kind="integer", min=1),
    "proprietario_id": Rule(kind="integer", min=1),
    "valor_aluguel": Rule(required=True, kind="number", min=0.01),
    "valor_deposito": Rule(kind="number", min=0),
    "data_inicio": Rule(required=True, kind="date"),
    "data_fim": Rule(required=True, kind="date"),
    "dia_vencimento": Rule(kind="integer", min=1, max=31),
    "status": Rule(choices=CONTRATO_STATUS),
    "observacoes": Rule(max_length=2000),
}

PAGAMENTO_RULES: dict[str, Rule] = {
    "contrato_id": Rule(required=True, kind="integer", min=1),
    "mes_referencia": Rule(required=True, kind="date"),
    "valor_devido": Rule(required=True, kind="number", min=0.01),
    "data_vencimento": Rule(required=True, kind="date"),
    "valor_pago": Rule(kind="number", min=0),
    "data_pagamento": Rule(kind="date"),
    "valor_juros": Rule(kind="number", min=0),
    "valor_multa": Rule(kind="number", min=0),
    "status": Rule(choices=PAGAMENTO_STATUS),
    "observacoes": Rule(max_length=2000),
}


# ---- Entity validators ---------------------------------------------------------


def _positive(value: Any) -> bool:
    num = _as_number(value)
    return num is not None and num > 0


def validate_imovel_values(data: Mapping[str, Any]) -> list[FieldError]:
    """Price rules that depend on `finalidade`."""
    finalidade = data.get("finalidade")
    errors: list[FieldError] = []
    venda = _positive(data.get("valor_venda"))
    aluguel = _positive(data.get("valor_aluguel"))
    if finalidade == "venda" and not venda:
        errors.append(_err("valor_venda", "Valor de venda é obrigatório para imóveis à venda", "REQUIRED"))
    elif finalidade == "aluguel" and not aluguel:
        errors.append(_err("valor_aluguel", "Valor de aluguel é obrigatório para imóveis para aluguel", "REQUIRED"))
    elif finalidade == "ambos" and not venda and not aluguel:
        msg = "Pelo menos um valor (venda ou aluguel) deve ser informado"
        errors.append(_err("valor_venda", msg, "REQUIRED_ONE_VALUE"))
        errors.append(_err("valor_aluguel", msg, "REQUIRED_ONE_VALUE"))
    return errors


def validate_imovel(data: Mapping[str, Any]) -> list[FieldError]:
    return validate_object(data, IMOVEL_RULES) + validate_imovel_values(data)


def validate_imovel_update(data: Mapping[str, Any], current: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_partial(data, IMOVEL_RULES)
    if any(k in data for k in ("finalidade", "valor_venda", "valor_aluguel")):
        merged = dict(current)
        merged.update(data)
        errors.extend(validate_imovel_values(merged))
    return errors


def validate_cliente(data: Mapping[str, Any], existing_emails: Iterable[str] | None = None) -> list[FieldError]:
    return validate_object(data, CLIENTE_RULES, {"email": existing_emails or []})


def validate_cidade(data: Mapping[str, Any], existing_names: Iterable[str] | None = None) -> list[FieldError]:
    return validate_object(data, CIDADE_RULES, {"nome": existing_names or []})


def _password_errors(field: str, password: Any) -> list[FieldError]:
    if not isinstance(password, str) or not password:
        return []
    return [_err(field, msg, "WEAK_PASSWORD") for msg in validate_password_strength(password)]


def validate_create_user(data: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_object(data, USER_RULES)
    if "confirmPassword" in data and data.get("confirmPassword") != data.get("password"):
        errors.append(_err("confirmPassword", "As senhas não coincidem", "PASSWORDS_DONT_MATCH"))
    if not any(e["field"] == "password" for e in errors):
        errors.extend(_password_errors("password", data.get("password")))
    return errors


def validate_change_password(data: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_object(
        data,
        {
            "currentPassword": Rule(required=True),
            "newPassword": Rule(required=True, min_length=8, max_length=128),
            "confirmPassword": Rule(required=True),
        },
    )
    new = data.get("newPassword")
    if data.get("confirmPassword") and new != data.get("confirmPassword"):
        errors.append(_err("confirmPassword", "As senhas não coincidem", "PASSWORDS_DONT_MATCH"))
    if new and data.get("currentPassword") == new:
        errors.append(_err("newPassword", "A nova senha deve ser diferente da senha atual", "SAME_PASSWORD"))
    if not any(e["field"] == "newPassword" for e in errors):
        errors.extend(_password_errors("newPassword", new))
    return errors


def validate_notificacao(data: Mapping[str, Any]) -> list[FieldError]:
    return validate_object(data, NOTIFICACAO_RULES)


def validate_configuracao_notificacao(data: Mapping[str, Any]) -> list[FieldError]:
    return validate_partial(data, CONFIGURACAO_NOTIFICACAO_RULES)


def validate_contrato_values(data: Mapping[str, Any]) -> list[FieldError]:
    inicio, fim = parse_date(data.get("data_inicio")), parse_date(data.get("data_fim"))
    if inicio and fim and fim <= inicio:
        return [_err("data_fim", "A data de término deve ser posterior à data de início", "INVALID_DATE_RANGE")]
    return []


def validate_contrato(data: Mapping[str, Any]) -> list[FieldError]:
    return validate_object(data, CONTRATO_RULES) + validate_contrato_values(data)


def validate_contrato_update(data: Mapping[str, Any], current: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_partial(data, CONTRATO_RULES)
    if not errors and ("data_inicio" in data or "data_fim" in data):
        errors.extend(validate_contrato_values({**current, **data}))
    return errors


def validate_pagamento_values(data: Mapping[str, Any]) -> list[FieldError]:
    """`valor_pago` and `data_pagamento` belong to paid payments only."""
    errors: list[FieldError] = []
    if data.get("status") == "pago":
        if not _positive(data.get("valor_pago")):
            errors.append(_err("valor_pago", "Valor pago é obrigatório para pagamentos quitados", "REQUIRED"))
        if _is_empty(data.get("data_pagamento")):
            errors.append(_err("data_pagamento", "Data de pagamento é obrigatória para pagamentos quitados", "REQUIRED"))
    else:
        for name in ("valor_pago", "data_pagamento"):
            if not _is_empty(data.get(name)):
                errors.append(_err(name, "Permitido apenas para pagamentos com status pago", "INVALID_STATUS"))
    return errors


def validate_pagamento(data: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_object(data, PAGAMENTO_RULES)
    return errors or validate_pagamento_values(data)


def validate_pagamento_update(data: Mapping[str, Any], current: Mapping[str, Any]) -> list[FieldError]:
    errors = validate_partial(data, PAGAMENTO_RULES)
    return errors or validate_pagamento_values({**current, **data})


# ---- Images --------------------------------------------------------------------

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
MAX_IMAGE_FILES = 10
MIN_IMAGE_WIDTH, MIN_IMAGE_HEIGHT = 300, 200
MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT = 4000, 3000


def validate_image_count(count: int) -> list[FieldError]:
    if count == 0:
        return [_err("images", "Nenhuma imagem enviada", "REQUIRED")]
    if count > MAX_IMAGE_FILES:
        return [_err("images", f"Muitos arquivos. Máximo permitido: {MAX_IMAGE_FILES}", "TOO_MANY_FILES")]
    return []


def validate_image_file(filename: str, mimetype: str | None, size: int) -> list[FieldError]:
    errors: list[FieldError] = []
    if (mimetype or "").lower() not in ALLOWED_IMAGE_TYPES:
        allowed = ", ".join(ALLOWED_IMAGE_TYPES)
        errors.append(_err(filename, f"Tipo de arquivo não permitido. Tipos aceitos: {allowed}", "INVALID_FILE_TYPE"))
    if size > MAX_IMAGE_BYTES:
        errors.append(_err(filename, f"Arquivo muito grande. Tamanho máximo: {MAX_IMAGE_BYTES // (1024 * 1024)}MB", "FILE_TOO_LARGE"))
    if size == 0:
        errors.append(_err(filename, "Arquivo vazio", "EMPTY_FILE"))
    return errors


def validate_image_dimensions(width: int, height: int, filename: str) -> list[FieldError]:
    errors: list[FieldError] = []
    if width < MIN_IMAGE_WIDTH:
        errors.append(_err(filename, f"{filename}: Largura mínima é {MIN_IMAGE_WIDTH}px", "MIN_WIDTH"))
    if width > MAX_IMAGE_WIDTH:
        errors.append(_err(filename, f"{filename}: Largura máxima é {MAX_IMAGE_WIDTH}px", "MAX_WIDTH"))
    if height < MIN_IMAGE_HEIGHT:
        errors.append(_err(filename, f"{filename}: Altura mínima é {MIN_IMAGE_HEIGHT}px", "MIN_HEIGHT"))
    if height > MAX_IMAGE_HEIGHT:
        errors.append(_err(filename, f"{filename}: Altura máxima é {MAX_IMAGE_HEIGHT}px", "MAX_HEIGHT"))
    return errors


__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "CIDADE_RULES",
    "CLIENTE_RULES",
    "CONTRATO_RULES",
    "CONTRATO_STATUS",
    "FieldError",
    "IMOVEL_RULES",
    "MESSAGES",
    "PAGAMENTO_RULES",
    "PAGAMENTO_STATUS",
    "Rule",
    "as_int",
    "ensure_valid",
    "group_by_field",
    "json_body",
    "parse_date",
    "sanitize_input",
    "validate_change_password",
    "validate_cidade",
    "validate_cliente",
    "validate_configuracao_notificacao",
    "validate_contrato",
    "validate_contrato_update",
    "validate_create_user",
    "validate_field",
    "validate_image_count",
    "validate_image_dimensions",
    "validate_image_file",
    "validate_imovel",
    "validate_imovel_update",
    "validate_notificacao",
    "validate_object",
    "validate_pagamento",
    "validate_pagamento_update",
    "validate_partial",
]
