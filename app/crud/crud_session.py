# auth_api/app/crud/crud_session.py
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from loguru import logger

from app.core.config import settings
from app.core.security import hash_token, utcnow
from app.models.session import Session


async def create_session(
    db: AsyncSession,
    *,
    user_id: int,
    kind: str,
    access_token: str,
    expires_at: datetime,
    refresh_token: Optional[str] = None,
    refresh_expires_at: Optional[datetime] = None,
    client_id: Optional[str] = None,
    scope: Optional[str] = None,
    application_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Session:
    """Cria uma sessão guardando apenas os hashes dos tokens."""
    db_session = Session(
        user_id=user_id,
        kind=kind,
        client_id=client_id,
        scope=scope,
        access_token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token) if refresh_token else None,
        expires_at=expires_at,
        refresh_expires_at=refresh_expires_at,
        application_id=application_id,
        ip_address=ip_address,
        user_agent=user_agent[:255] if user_agent else None,
        is_active=True,
        last_activity_at=utcnow(),
    )
    db.add(db_session)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.error(f"Conflito ao criar sessão {kind} para user ID {user_id}: {e}")
        raise
    await db.refresh(db_session)
    return db_session


async def get(db: AsyncSession, *, session_id: int) -> Optional[Session]:
    return await db.get(Session, session_id)


async def get_by_access_token(db: AsyncSession, *, token: str) -> Optional[Session]:
    stmt = select(Session).where(Session.access_token_hash == hash_token(token))
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_by_refresh_token(db: AsyncSession, *, token: str) -> Optional[Session]:
    stmt = select(Session).where(Session.refresh_token_hash == hash_token(token))
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_active_sessions(
    db: AsyncSession, *, user_id: Optional[int] = None, kind: Optional[str] = None,
    skip: int = 0, limit: int = 100,
) -> List[Session]:
    """Sessões ativas e não expiradas, mais recentes primeiro."""
    stmt = select(Session).where(
        Session.is_active.is_(True),
        Session.expires_at > utcnow(),
    )
    if user_id is not None:
        stmt = stmt.where(Session.user_id == user_id)
    if kind is not None:
        stmt = stmt.where(Session.kind == kind)
    stmt = stmt.order_by(Session.created_at.desc(), Session.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def deactivate(db: AsyncSession, *, db_session: Session) -> bool:
    """Revogação soft. Retorna False se a sessão já estava inativa."""
    if not db_session.is_active:
        return False
    db_session.is_active = False
    db_session.revoked_at = utcnow()
    db.add(db_session)
    await db.commit()
    return True


async def touch_activity(db: AsyncSession, *, db_session: Session, now: datetime) -> bool:
    """
    Atualiza last_activity_at, no máximo uma vez por SESSION_ACTIVITY_UPDATE_SECONDS.
    """
    last = db_session.last_activity_at
    if last is not None and now - last < timedelta(seconds=settings.SESSION_ACTIVITY_UPDATE_SECONDS):
        return False
    db_session.last_activity_at = now
    db.add(db_session)
    await db.commit()
    return True


async def rotate_tokens(
    db: AsyncSession,
    *,
    db_session: Session,
    access_token: str,
    expires_at: datetime,
    refresh_token: str,
    refresh_expires_at: datetime,
) -> Session:
    """Substitui o par de tokens de uma sessão (refresh com rotação)."""
    db_session.access_token_hash = hash_token(access_token)
    db_session.refresh_token_hash = hash_token(refresh_token)
    db_session.expires_at = expires_at
    db_session.refresh_expires_at = refresh_expires_at
    db_session.last_activity_at = utcnow()
    db.add(db_session)
    await db.commit()
    await db.refresh(db_session)
    return db_session

