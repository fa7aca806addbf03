# auth_api/app/services/token_issuer.py
"""
Emissão e verificação dos tokens OAuth/OIDC (RS256, chave do processo).

- Access token: JWT auto-contido com jti; o hash fica numa sessão `oauth`
  para que revoke/introspect consigam invalidá-lo.
- ID token: JWT OIDC com aud = client_id e claims conforme o scope.
"""
import secrets
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from jose import jwt, JWTError, ExpiredSignatureError
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import utcnow
from app.core.signing import SIGNING_ALGORITHM, get_signing_keys
from app.crud import crud_session
from app.models.session import Session, SessionKind
from app.models.user import User
from app.oidc_server import generate_user_info
from app.schemas.token import OAuthTokenResponse
from app.services.code_exchange import SessionGrant

OAUTH_ACCESS_TOKEN_TYPE = "access_token"


def _sign(claims: Dict[str, Any], access_token: Optional[str] = None) -> str:
    keys = get_signing_keys()
    return jwt.encode(
        claims,
        keys.private_pem,
        algorithm=SIGNING_ALGORITHM,
        headers={"kid": keys.kid},
        access_token=access_token,  # gera at_hash no ID token
    )


def issue_access_token(user_id: int, client_id: str, scope: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    claims = {
        "iss": settings.JWT_ISSUER,
        "sub": str(user_id),
        "client_id": client_id,
        "scope": scope,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": now + timedelta(seconds=settings.OAUTH_ACCESS_TOKEN_EXPIRE_SECONDS),
        "token_type": OAUTH_ACCESS_TOKEN_TYPE,
    }
    return _sign(claims)


def issue_id_token(
    user: User,
    client_id: str,
    scope: str = "openid",
    nonce: Optional[str] = None,
    access_token: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    claims: Dict[str, Any] = dict(generate_user_info(user, scope))
    claims.update({
        "iss": settings.JWT_ISSUER,
        "aud": client_id,
        "iat": now,
        "exp": now + timedelta(seconds=settings.OAUTH_ACCESS_TOKEN_EXPIRE_SECONDS),
        "auth_time": int(now.timestamp()),
    })
    if nonce:
        claims["nonce"] = nonce
    return _sign(claims, access_token=access_token)


async def issue_tokens(
    db: AsyncSession, *, grant: SessionGrant, user: User, request: Optional[Request] = None
) -> OAuthTokenResponse:
    """Emite access + ID token e cria a sessão `oauth` correspondente."""
    now = datetime.now(timezone.utc)
    access_token = issue_access_token(user.id, grant.client_id, grant.scope, now=now)
    id_token = issue_id_token(
        user, grant.client_id, grant.scope, nonce=grant.nonce, access_token=access_token, now=now
    )

    await crud_session.create_session(
        db,
        user_id=user.id,
        kind=SessionKind.OAUTH,
        access_token=access_token,
        expires_at=(now + timedelta(seconds=settings.OAUTH_ACCESS_TOKEN_EXPIRE_SECONDS)).replace(tzinfo=None),
        client_id=grant.client_id,
        scope=grant.scope,
        application_id=grant.application_id,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )

    return OAuthTokenResponse(
        access_token=access_token,
        id_token=id_token,
        expires_in=settings.OAUTH_ACCESS_TOKEN_EXPIRE_SECONDS,
        scope=grant.scope,
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verifica assinatura RS256, issuer e expiração. Propaga JWTError."""
    keys = get_signing_keys()
    payload = jwt.decode(
        token,
        keys.public_pem,
        algorithms=[SIGNING_ALGORITHM],
        issuer=settings.JWT_ISSUER,
        options={"verify_aud": False},
    )
    if payload.get("token_type") != OAUTH_ACCESS_TOKEN_TYPE:
        raise JWTError("unexpected token_type")
    return payload


def decode_id_token_hint(token: str) -> Dict[str, Any]:
    """
    ID token recebido como id_token_hint no logout. Assinatura e issuer são
    verificados; a expiração não, o hint pode já ter expirado.
    """
    keys = get_signing_keys()
    payload = jwt.decode(
        token,
        keys.public_pem,
        algorithms=[SIGNING_ALGORITHM],
        issuer=settings.JWT_ISSUER,
        options={"verify_aud": False, "verify_exp": False, "verify_at_hash": False},
    )
    # Access tokens OAuth não têm aud e carregam token_type
    if "token_type" in payload or not isinstance(payload.get("aud"), str):
        raise JWTError("not an ID token")
    return payload


@dataclass(frozen=True)
class VerifiedAccessToken:
    session: Session
    claims: Dict[str, Any]


async def resolve_access_token(db: AsyncSession, token: Optional[str]) -> Optional[VerifiedAccessToken]:
    """
    Access token válido com sessão `oauth` ativa, ou None.
    Usado por introspect e userinfo.
    """
    if not token:
        return None
    try:
        claims = decode_access_token(token)
    except ExpiredSignatureError:
        logger.info("Access token OAuth expirado.")
        return None
    except JWTError as e:
        logger.info(f"Access token OAuth inválido: {e}")
        return None

    db_session = await crud_session.get_by_access_token(db, token=token)
    if (
        db_session is None
        or db_session.kind != SessionKind.OAUTH
        or not db_session.is_active
        or db_session.is_expired(utcnow())
    ):
        return None
    return VerifiedAccessToken(session=db_session, claims=claims)
