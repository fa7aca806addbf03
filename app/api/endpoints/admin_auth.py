# auth_api/app/api/endpoints/admin_auth.py
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_admin
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import generate_opaque_token, utcnow
from app.crud import crud_session
from app.crud.crud_user import user as crud_user
from app.db.session import get_db
from app.models.session import SessionKind
from app.schemas.admin import AdminIdentity
from app.schemas.token import AdminLoginRequest, AdminLoginResponse
from app.services import audit

router = APIRouter()


@router.post("/login", response_model=AdminLoginResponse)
async def admin_login(
    request: Request,
    response: Response,
    login_in: AdminLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Login da consola admin. Emite um token opaco (referência para a sessão)
    devolvido no corpo e num cookie httponly.
    """
    db_user = await crud_user.authenticate(db, email=login_in.email, password=login_in.password)

    if not db_user or not db_user.is_admin:
        await audit.record(
            db,
            actor=db_user.id if db_user else audit.ANONYMOUS,
            action=audit.AuditAction.FAILED,
            target="admin_login",
            metadata={"reason": "not_admin" if db_user else "invalid_credentials"},
            request=request,
        )
        raise AuthenticationError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    access_token = generate_opaque_token()
    expires_at = utcnow() + timedelta(hours=settings.ADMIN_SESSION_EXPIRE_HOURS)
    db_session = await crud_session.create_session(
        db,
        user_id=db_user.id,
        kind=SessionKind.ADMIN,
        access_token=access_token,
        expires_at=expires_at,
        **audit.request_origin(request),
    )

    await audit.record(
        db,
        actor=db_user.id,
        action=audit.AuditAction.LOGIN,
        target="admin_login",
        metadata={"session_id": db_session.id},
        request=request,
    )
    logger.info(f"Login admin bem-sucedido para {db_user.email} (sessão ID {db_session.id}).")

    response.set_cookie(
        key=settings.ADMIN_SESSION_COOKIE_NAME,
        value=access_token,
        max_age=settings.ADMIN_SESSION_EXPIRE_HOURS * 3600,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )
    return AdminLoginResponse(access_token=access_token, expires_at=expires_at)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def admin_logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(get_current_admin),
) -> Response:
    """Termina a sessão admin atual e apaga o cookie."""
    db_session = request.state.session
    await crud_session.deactivate(db, db_session=db_session)

    await audit.record(
        db,
        actor=admin.id,
        action=audit.AuditAction.LOGOUT,
        target="admin_session",
        metadata={"session_id": db_session.id},
        request=request,
    )
    logger.info(f"Admin {admin.email} terminou a sessão ID {db_session.id}.")

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(
        key=settings.ADMIN_SESSION_COOKIE_NAME,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )
    return response
