# auth_api/app/crud/crud_oauth_client.py
import secrets
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from loguru import logger

from app.core.security import hash_client_secret
from app.models.oauth2_client import OAuth2Client
from app.schemas.admin import OAuthClientCreate


async def get_by_client_id(db: AsyncSession, *, client_id: str) -> Optional[OAuth2Client]:
    stmt = select(OAuth2Client).where(OAuth2Client.client_id == client_id)
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_multi(
    db: AsyncSession, *, application_id: Optional[str] = None, skip: int = 0, limit: int = 100
) -> List[OAuth2Client]:
    stmt = select(OAuth2Client).order_by(OAuth2Client.id)
    if application_id:
        stmt = stmt.where(OAuth2Client.application_id == application_id)
    result = await db.execute(stmt.offset(skip).limit(limit))
    return list(result.scalars().all())


async def create_client(
    db: AsyncSession, *, obj_in: OAuthClientCreate
) -> Tuple[OAuth2Client, Optional[str]]:
    """
    Regista um novo cliente OAuth. Retorna o objeto e o client_secret em texto plano
    (None para clientes públicos). O secret não pode ser recuperado depois.
    """
    client_id = f"client_{secrets.token_hex(12)}"
    plain_secret = secrets.token_urlsafe(32) if obj_in.is_confidential else None

    db_obj = OAuth2Client(
        client_id=client_id,
        client_secret_hash=hash_client_secret(plain_secret) if plain_secret else None,
        client_name=obj_in.client_name,
        is_confidential=obj_in.is_confidential,
        # Clientes públicos só trocam códigos com PKCE
        require_pkce=obj_in.require_pkce or not obj_in.is_confidential,
        application_id=obj_in.application_id,
        redirect_uris_str=" ".join(obj_in.redirect_uris),
        scope_str=obj_in.scope,
        is_active=True,
    )
    db.add(db_obj)
    await db.commit()
    await db.refresh(db_obj)
    logger.info(f"Cliente OAuth registado: {client_id} (confidencial={obj_in.is_confidential})")
    return db_obj, plain_secret
