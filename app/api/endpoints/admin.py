# auth_api/app/api/endpoints/admin.py
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_admin, require_permission
from app.core.permissions import Permission
from app.crud import crud_audit_log, crud_oauth_client, crud_session
from app.db.session import get_db
from app.schemas.admin import (
    AdminIdentity,
    AuditLogEntry,
    OAuthClientCreate,
    OAuthClientCreated,
    OAuthClientInfo,
)
from app.schemas.token import SessionInfo
from app.services import audit

router = APIRouter()


@router.get("/me", response_model=AdminIdentity)
async def read_admin_me(admin: AdminIdentity = Depends(get_current_admin)) -> Any:
    return admin


# --- Sessões ---

@router.get("/sessions", response_model=List[SessionInfo])
async def list_sessions(
    user_id: Optional[int] = Query(None),
    kind: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_permission(Permission.SESSIONS_READ)),
) -> Any:
    """Lista sessões ativas (todos os namespaces, filtráveis)."""
    return await crud_session.get_active_sessions(db, user_id=user_id, kind=kind, skip=skip, limit=limit)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session(
    session_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_permission(Permission.SESSIONS_REVOKE)),
) -> Response:
    db_session = await crud_session.get(db, session_id=session_id)
    if not db_session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sessão não encontrada.")

    await crud_session.deactivate(db, db_session=db_session)
    await audit.record(
        db,
        actor=admin.id,
        action=audit.AuditAction.DELETE,
        target="session",
        metadata={"session_id": session_id, "user_id": db_session.user_id, "kind": db_session.kind},
        request=request,
    )
    logger.info(f"Admin {admin.email} revogou a sessão ID {session_id}.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Clientes OAuth ---

@router.get("/oauth-clients", response_model=List[OAuthClientInfo])
async def list_oauth_clients(
    application_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_permission(Permission.OAUTH_CLIENTS_READ)),
) -> Any:
    return await crud_oauth_client.get_multi(db, application_id=application_id, skip=skip, limit=limit)


@router.post("/oauth-clients", response_model=OAuthClientCreated, status_code=status.HTTP_201_CREATED)
async def create_oauth_client(
    request: Request,
    client_in: OAuthClientCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_permission(Permission.OAUTH_CLIENTS_WRITE)),
) -> Any:
    """Regista um cliente OAuth. O client_secret só é devolvido nesta resposta."""
    db_client, plain_secret = await crud_oauth_client.create_client(db, obj_in=client_in)

    await audit.record(
        db,
        actor=admin.id,
        action=audit.AuditAction.CREATE,
        target="oauth_client",
        metadata={"client_id": db_client.client_id, "is_confidential": db_client.is_confidential},
        request=request,
    )
    created = OAuthClientCreated.model_validate(db_client)
    created.client_secret = plain_secret
    return created


# --- Audit log ---

@router.get("/audit-logs", response_model=List[AuditLogEntry])
async def list_audit_logs(
    action: Optional[str] = Query(None),
    actor: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_permission(Permission.AUDIT_READ)),
) -> Any:
    return await crud_audit_log.get_multi(db, action=action, actor=actor, skip=skip, limit=limit)
