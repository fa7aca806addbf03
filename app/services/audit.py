# auth_api/app/services/audit.py
"""
Audit sink: cada tentativa de autenticação (sucesso ou falha) gera um registo
append-only em audit_logs e uma linha no loguru.

Falhas de escrita são registadas no log e nunca propagadas para o request.
"""
from typing import Any, Dict, Optional

from fastapi import Request
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import crud_audit_log


class AuditAction:
    LOGIN = "LOGIN"
    FAILED = "FAILED"
    DELETE = "DELETE"
    LOGOUT = "LOGOUT"
    ACCESS = "ACCESS"
    CREATE = "CREATE"


ANONYMOUS = "anonymous"


def anonymize_client_id(client_id: Optional[str]) -> Optional[str]:
    """Mantém só os 4 primeiros caracteres: 'client_abc123' -> 'clie***'."""
    if not client_id:
        return None
    return f"{client_id[:4]}***"


def request_origin(request: Optional[Request]) -> Dict[str, Optional[str]]:
    if request is None:
        return {"ip_address": None, "user_agent": None}
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def record(
    db: AsyncSession,
    *,
    actor: Any,
    action: str,
    target: str,
    metadata: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> bool:
    """
    Grava um evento de auditoria.

    Returns:
        True se gravado, False se a escrita falhou.
    """
    actor = str(actor) if actor is not None else ANONYMOUS

    try:
        await crud_audit_log.create(
            db,
            actor=actor,
            action=action,
            target=target,
            metadata=metadata,
            **request_origin(request),
        )
    except Exception as e:
        await db.rollback()
        logger.error(f"Falha ao gravar evento de auditoria {action} ({target}): {e}")
        return False

    logger.info(f"AUDIT {action} actor={actor} target={target}")
    return True
