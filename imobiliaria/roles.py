"""Roles and the permission map.

Role: the two account roles stored on users.
Permission: dotted capability names checked by `app_authz.require_permission`.
"""

from __future__ import annotations

from typing import Literal

Role = Literal["admin", "real-estate-agent"]

ROLES: tuple[Role, ...] = ("admin", "real-estate-agent")

ROLE_LABELS: dict[str, str] = {
    "admin": "Administrador",
    "real-estate-agent": "Corretor de Imóveis",
}

ALL_PERMISSIONS: frozenset[str] = frozenset(
    {
        "users.view",
        "users.create",
        "users.edit",
        "users.delete",
        "users.manage_roles",
        "properties.view",
        "properties.create",
        "properties.edit",
        "properties.delete",
        "clients.view",
        "clients.create",
        "clients.edit",
        "clients.delete",
        "cities.view",
        "cities.create",
        "cities.edit",
        "cities.delete",
        "notifications.view",
        "notifications.create",
        "financial.contracts.view",
        "financial.contracts.create",
        "financial.contracts.edit",
        "financial.contracts.delete",
        "financial.payments.view",
        "financial.payments.create",
        "financial.payments.edit",
        "financial.payments.delete",
        "financial.payments.process",
        "profile.view",
        "profile.edit",
        "dashboard.view",
        "reports.view",
        "audit.logs.view",
        "system.admin",
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": ALL_PERMISSIONS,
    "real-estate-agent": frozenset(
        {
            "properties.view",
            "properties.create",
            "properties.edit",
            "properties.delete",
            "clients.view",
            "clients.create",
            "clients.edit",
            "clients.delete",
            "cities.view",
            "notifications.view",
            "notifications.create",
            "financial.contracts.view",
            "financial.contracts.create",
            "financial.contracts.edit",
            "financial.payments.view",
            "financial.payments.create",
            "financial.payments.edit",
            "profile.view",
            "profile.edit",
            "dashboard.view",
        }
    ),
}


def is_valid_role(role: str | None) -> bool:
    return role in ROLE_PERMISSIONS


def permissions_for(role: str | None) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role or "", frozenset())


def has_permission(role: str | None, permission: str) -> bool:
    return permission in permissions_for(role)


def has_any_permission(role: str | None, permissions: list[str] | tuple[str, ...]) -> bool:
    granted = permissions_for(role)
    return any(p in granted for p in permissions)


def can_manage_role(actor_role: str | None, target_role: str | None) -> bool:
    # Only admins manage accounts, and only towards known roles
    return actor_role == "admin" and is_valid_role(target_role)


def assignable_roles(actor_role: str | None) -> list[str]:
    if actor_role == "admin":
        return list(ROLES)
    return []


def role_label(role: str | None) -> str:
    return ROLE_LABELS.get(role or "", role or "")


__all__ = [
    "Role",
    "ROLES",
    "ROLE_PERMISSIONS",
    "is_valid_role",
    "permissions_for",
    "has_permission",
    "has_any_permission",
    "can_manage_role",
    "assignable_roles",
    "role_label",
]
