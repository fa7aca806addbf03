# auth_api/app/api/endpoints/users.py
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user
from app.core import security
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import utcnow
from app.crud import crud_session
from app.crud.crud_user import user as crud_user
from app.db.session import get_db
from app.models.session import SessionKind
from app.models.user import User as UserModel
from app.schemas.token import RefreshTokenRequest, Token, UserLoginRequest
from app.schemas.user import User as UserSchema
from app.services import audit

router = APIRouter()


def _set_session_cookie(request: Request, response: Response, access_token: str) -> None:
    response.set_cookie(
        key=settings.USER_SESSION_COOKIE_NAME,
        value=access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )


@router.post("/login", response_model=Token)
async def login(
    request: Request,
    response: Response,
    login_in: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Login da app móvel/web. Devolve um access token assinado (HS256, com `sid`)
    e um refresh token opaco.
    """
    db_user = await crud_user.authenticate(db, email=login_in.email, password=login_in.password)
    if not db_user:
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.FAILED, target="user_login",
            metadata={"reason": "invalid_credentials"}, request=request,
        )
        raise AuthenticationError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    refresh_token, refresh_expires_at = security.create_refresh_token()
    # A sessão nasce com um hash provisório; o token real precisa do id da sessão
    db_session = await crud_session.create_session(
        db,
        user_id=db_user.id,
        kind=SessionKind.USER,
        access_token=security.generate_opaque_token(),
        expires_at=refresh_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
        **audit.request_origin(request),
    )
    access_token, expires_at = security.create_user_access_token(db_user, db_session.id)
    await crud_session.rotate_tokens(
        db,
        db_session=db_session,
        access_token=access_token,
        expires_at=expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
    )

    await audit.record(
        db, actor=db_user.id, action=audit.AuditAction.LOGIN, target="user_login",
        metadata={"session_id": db_session.id}, request=request,
    )
    logger.info(f"Login para {db_user.email}: Sucesso. Emitindo tokens.")

    _set_session_cookie(request, response, access_token)
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/refresh", response_model=Token)
async def refresh_access_token(
    request: Request,
    response: Response,
    refresh_request: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Troca um refresh token válido por um par novo; o anterior deixa de funcionar."""
    db_session = await crud_session.get_by_refresh_token(db, token=refresh_request.refresh_token)
    now = utcnow()

    if (
        db_session is None
        or db_session.kind != SessionKind.USER
        or not db_session.is_active
        or db_session.refresh_expires_at is None
        or db_session.refresh_expires_at <= now
    ):
        await audit.record(
            db, actor=db_session.user_id if db_session else audit.ANONYMOUS,
            action=audit.AuditAction.FAILED, target="user_refresh",
            metadata={"reason": "invalid_refresh_token"}, request=request,
        )
        raise AuthenticationError("Invalid refresh token", status.HTTP_401_UNAUTHORIZED)

    db_user = await crud_user.get(db, id=db_session.user_id)
    if not db_user or not db_user.is_active:
        await crud_session.deactivate(db, db_session=db_session)
        await audit.record(
            db, actor=db_session.user_id, action=audit.AuditAction.FAILED, target="user_refresh",
            metadata={"reason": "user_inactive"}, request=request,
        )
        raise AuthenticationError("Invalid refresh token", status.HTTP_401_UNAUTHORIZED)

    access_token, expires_at = security.create_user_access_token(db_user, db_session.id)
    new_refresh_token, refresh_expires_at = security.create_refresh_token()
    await crud_session.rotate_tokens(
        db,
        db_session=db_session,
        access_token=access_token,
        expires_at=expires_at,
        refresh_token=new_refresh_token,
        refresh_expires_at=refresh_expires_at,
    )

    await audit.record(
        db, actor=db_user.id, action=audit.AuditAction.LOGIN, target="user_refresh",
        metadata={"session_id": db_session.id}, request=request,
    )
    _set_session_cookie(request, response, access_token)
    return Token(
        access_token=access_token,
        refresh_token=new_refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
) -> Response:
    """Termina a sessão atual (access e refresh token deixam de valer)."""
    db_session = request.state.session
    await crud_session.deactivate(db, db_session=db_session)
    await audit.record(
        db, actor=current_user.id, action=audit.AuditAction.LOGOUT, target="user_session",
        metadata={"session_id": db_session.id}, request=request,
    )
    logger.info(f"Utilizador {current_user.email} terminou a sessão ID {db_session.id}.")

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(
        key=settings.USER_SESSION_COOKIE_NAME,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/me", response_model=UserSchema)
async def read_users_me(current_user: UserModel = Depends(get_current_user)) -> Any:
    return current_user
