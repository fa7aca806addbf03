# auth_api/app/crud/crud_audit_log.py
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.audit_log import AuditLog


async def create(
    db: AsyncSession,
    *,
    actor: str,
    action: str,
    target: str,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    entry = AuditLog(
        actor=actor,
        action=action,
        target=target,
        event_metadata=metadata or {},
        ip_address=ip_address,
        user_agent=user_agent[:255] if user_agent else None,
    )
    db.add(entry)
    await db.commit()
    return entry


async def get_multi(
    db: AsyncSession,
    *,
    action: Optional[str] = None,
    actor: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[AuditLog]:
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if actor:
        stmt = stmt.where(AuditLog.actor == actor)
    stmt = stmt.order_by(AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
