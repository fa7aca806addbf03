# auth_api/app/api/dependencies.py
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.permissions import has_permission
from app.db.session import get_db
from app.models.session import SessionKind
from app.models.user import User as UserModel
from app.schemas.admin import AdminIdentity
from app.services import authenticator

# Só para o Swagger: o gate também aceita o token via cookie
bearer_scheme = HTTPBearer(
    auto_error=False,
    description="Insira o Access Token (com 'Bearer ') e.g. 'Bearer eyJ...'",
)


async def get_current_admin(
    request: Request,
    db: AsyncSession = Depends(get_db),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AdminIdentity:
    """
    Gate de todas as rotas /api/v1/admin/*.
    Deixa a identidade em request.state.admin para os handlers seguintes.
    """
    result = await authenticator.authenticate(
        db,
        request,
        kind=SessionKind.ADMIN,
        cookie_name=settings.ADMIN_SESSION_COOKIE_NAME,
        raw_token=creds.credentials if creds else None,
    )
    if not result.ok:
        raise AuthenticationError(result.error, result.status)

    request.state.admin = result.admin
    request.state.session = result.session
    return result.admin


def require_permission(permission: str) -> Callable:
    """Dependência que exige `permission` ("modulo:acao") à identidade admin."""

    async def permission_checker(
        admin: AdminIdentity = Depends(get_current_admin),
    ) -> AdminIdentity:
        if not has_permission(admin, permission):
            logger.warning(f"Admin ID {admin.id} sem permissão '{permission}'.")
            raise AuthenticationError(authenticator.PERMISSION_DENIED, 403)
        return admin

    return permission_checker


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserModel:
    """Gate das rotas de utilizador final (token assinado, header ou cookie)."""
    result = await authenticator.authenticate(
        db,
        request,
        kind=SessionKind.USER,
        cookie_name=settings.USER_SESSION_COOKIE_NAME,
        raw_token=creds.credentials if creds else None,
    )
    if not result.ok:
        raise AuthenticationError(result.error, result.status)

    request.state.session = result.session
    return result.user

