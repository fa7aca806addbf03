# auth_api/app/crud/crud_authorization_code.py
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.security import generate_opaque_token, hash_token, utcnow
from app.models.oauth2_authorization_code import OAuth2AuthorizationCode


async def create_authorization_code(
    db: AsyncSession,
    *,
    client_id: str,
    user_id: int,
    redirect_uri: str,
    scope: Optional[str] = None,
    nonce: Optional[str] = None,
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
) -> Tuple[OAuth2AuthorizationCode, str]:
    """Gera um código de uso único; só o hash é guardado. Retorna (objeto, código plano)."""
    plain_code = generate_opaque_token()
    db_code = OAuth2AuthorizationCode(
        code_hash=hash_token(plain_code),
        client_id=client_id,
        user_id=user_id,
        redirect_uri=redirect_uri,
        scope=scope,
        nonce=nonce,
        code_challenge=code_challenge,
        code_challenge_method=(code_challenge_method or "plain") if code_challenge else None,
        expires_at=utcnow() + timedelta(minutes=settings.AUTHORIZATION_CODE_EXPIRE_MINUTES),
    )
    db.add(db_code)
    await db.commit()
    await db.refresh(db_code)
    return db_code, plain_code


async def get_by_code(db: AsyncSession, *, code: str) -> Optional[OAuth2AuthorizationCode]:
    stmt = select(OAuth2AuthorizationCode).where(
        OAuth2AuthorizationCode.code_hash == hash_token(code)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def consume(db: AsyncSession, *, code_id: int) -> bool:
    """
    Marca o código como usado num único UPDATE condicional.
    Entre redenções concorrentes do mesmo código, só uma vê rowcount == 1.
    """
    stmt = (
        update(OAuth2AuthorizationCode)
        .where(
            OAuth2AuthorizationCode.id == code_id,
            OAuth2AuthorizationCode.used_at.is_(None),
        )
        .values(used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1
