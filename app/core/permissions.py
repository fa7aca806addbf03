# auth_api/app/core/permissions.py
"""Permissões da consola admin no formato "modulo:acao"."""
from enum import Enum
from typing import Iterable


class Permission(str, Enum):
    SESSIONS_READ = "sessions:read"
    SESSIONS_REVOKE = "sessions:revoke"
    OAUTH_CLIENTS_READ = "oauth_clients:read"
    OAUTH_CLIENTS_WRITE = "oauth_clients:write"
    AUDIT_READ = "audit:read"

    def __str__(self) -> str:
        return self.value


WILDCARD = "*"


def has_permission(admin, permission: str) -> bool:
    """
    Verifica se a identidade admin concede `permission`.

    Aceita "*", a string exata "modulo:acao" ou "modulo:*".
    Super admins têm todas as permissões.
    """
    if admin is None:
        return False
    if admin.is_super_admin:
        return True

    granted: Iterable[str] = admin.permissions or []
    permission = str(permission)
    module = permission.split(":", 1)[0]
    for entry in granted:
        if entry == WILDCARD or entry == permission or entry == f"{module}:{WILDCARD}":
            return True
    return False
