# auth_api/app/services/authenticator.py
"""
Gate de autenticação das rotas protegidas.

O token chega pelo header `Authorization: Bearer` ou, em alternativa, por um
cookie. É classificado em duas variantes:

- OpaqueSessionToken: referência aleatória, resolvida pelo hash na tabela sessions
- SignedToken: JWT HS256 auto-contido com `sid`; assinatura e expiração são
  verificadas antes de qualquer acesso à base de dados

Cada sessão pertence a um namespace (`kind`); uma sessão de um tipo nunca
autentica rotas de outro.
"""
from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Request
from jose import JWTError, ExpiredSignatureError
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import decode_user_access_token, hash_token, utcnow
from app.crud import crud_session
from app.crud.crud_user import user as crud_user
from app.models.session import Session, SessionKind
from app.models.user import User
from app.schemas.admin import AdminIdentity
from app.services import audit

MISSING_TOKEN = "Missing access token"
UNAUTHORIZED = "Unauthorized"
PERMISSION_DENIED = "Permission denied"


@dataclass(frozen=True)
class OpaqueSessionToken:
    value: str


@dataclass(frozen=True)
class SignedToken:
    value: str


BearerToken = Union[OpaqueSessionToken, SignedToken]


@dataclass
class AuthResult:
    admin: Optional[AdminIdentity] = None
    user: Optional[User] = None
    session: Optional[Session] = None
    error: Optional[str] = None
    status: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_token(raw: str) -> BearerToken:
    # JWS compact: header.payload.signature
    if raw.count(".") == 2 and all(raw.split(".")):
        return SignedToken(raw)
    return OpaqueSessionToken(raw)


def extract_token(request: Request, cookie_name: Optional[str] = None) -> Optional[str]:
    """Header Authorization (Bearer) primeiro, cookie como fallback."""
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    if cookie_name:
        cookie_value = request.cookies.get(cookie_name)
        if cookie_value:
            return cookie_value
    return None


async def _resolve_session(db: AsyncSession, token: BearerToken) -> Optional[Session]:
    if isinstance(token, SignedToken):
        try:
            payload = decode_user_access_token(token.value)
        except ExpiredSignatureError:
            logger.info("Token assinado rejeitado: expirado.")
            return None
        except JWTError as e:
            logger.warning(f"Token assinado rejeitado: assinatura/claims inválidos ({e}).")
            return None

        session_id = payload.get("sid")
        if not isinstance(session_id, int):
            logger.warning("Token assinado sem claim 'sid' válido.")
            return None
        db_session = await crud_session.get(db, session_id=session_id)
        # O token tem de ser o emitido mais recentemente para a sessão
        if db_session is None or db_session.access_token_hash != hash_token(token.value):
            return None
        return db_session

    return await crud_session.get_by_access_token(db, token=token.value)


async def find_session(db: AsyncSession, raw_token: str) -> Optional[Session]:
    """Sessão referida pelo token, sem verificar kind, estado ou expiração."""
    return await _resolve_session(db, parse_token(raw_token))


def _to_identity(db_user: User) -> AdminIdentity:
    return AdminIdentity(
        id=db_user.id,
        email=db_user.email,
        role=db_user.role,
        permissions=list(db_user.permissions or []),
        is_super_admin=db_user.is_super_admin,
    )


async def _reject(
    db: AsyncSession, request: Request, error: str, status: int, reason: str,
    actor: Optional[int] = None,
) -> AuthResult:
    await audit.record(
        db,
        actor=actor,
        action=audit.AuditAction.FAILED,
        target=request.url.path,
        metadata={"reason": reason, "error": error},
        request=request,
    )
    return AuthResult(error=error, status=status)


async def authenticate(
    db: AsyncSession,
    request: Request,
    *,
    kind: str,
    cookie_name: Optional[str] = None,
    raw_token: Optional[str] = None,
) -> AuthResult:
    """
    Valida o token do request contra uma sessão viva do namespace `kind`.

    Todas as falhas devolvem o mesmo corpo genérico; o motivo só vai para
    o log e para o audit.
    """
    raw_token = raw_token or extract_token(request, cookie_name)
    if not raw_token:
        return await _reject(db, request, MISSING_TOKEN, 401, "missing_token")

    token = parse_token(raw_token)
    db_session = await _resolve_session(db, token)
    if db_session is None:
        return await _reject(db, request, UNAUTHORIZED, 401, "unknown_token")

    if db_session.kind != kind:
        logger.warning(f"Sessão ID {db_session.id} ({db_session.kind}) usada numa rota '{kind}'.")
        return await _reject(db, request, UNAUTHORIZED, 401, "wrong_namespace", db_session.user_id)

    now = utcnow()
    if not db_session.is_active:
        return await _reject(db, request, UNAUTHORIZED, 401, "session_inactive", db_session.user_id)
    if db_session.is_expired(now):
        return await _reject(db, request, UNAUTHORIZED, 401, "session_expired", db_session.user_id)

    db_user = await crud_user.get(db, id=db_session.user_id)
    if db_user is None or not db_user.is_active:
        return await _reject(db, request, UNAUTHORIZED, 401, "user_inactive", db_session.user_id)

    result = AuthResult(user=db_user, session=db_session)
    if kind == SessionKind.ADMIN:
        if not db_user.is_admin:
            return await _reject(db, request, PERMISSION_DENIED, 403, "not_admin", db_user.id)
        result.admin = _to_identity(db_user)

    await crud_session.touch_activity(db, db_session=db_session, now=now)
    await audit.record(
        db,
        actor=db_user.id,
        action=audit.AuditAction.ACCESS,
        target=request.url.path,
        metadata={"session_id": db_session.id, "kind": kind},
        request=request,
    )
    return result
