# tests/test_08_audit.py
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.services import audit

pytestmark = pytest.mark.asyncio


async def count_entries(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count()).select_from(AuditLog))
    return result.scalar_one()


async def test_anonymize_client_id():
    assert audit.anonymize_client_id("client_abcdef") == "clie***"
    assert audit.anonymize_client_id(None) is None
    assert audit.anonymize_client_id("") is None


async def test_record_persists_entry(db_session: AsyncSession):
    assert await audit.record(
        db_session, actor=42, action=audit.AuditAction.LOGIN, target="admin_login", metadata={"session_id": 1}
    ) is True

    entry = (await db_session.execute(select(AuditLog))).scalars().one()
    assert entry.actor == "42"
    assert entry.action == "LOGIN"
    assert entry.event_metadata == {"session_id": 1}


async def test_record_defaults_to_anonymous(db_session: AsyncSession):
    await audit.record(db_session, actor=None, action=audit.AuditAction.FAILED, target="oauth_token")
    entry = (await db_session.execute(select(AuditLog))).scalars().one()
    assert entry.actor == "anonymous"


async def test_failed_gate_hits_do_not_hide_later_events(async_client: AsyncClient, db_session: AsyncSession):
    """Every attempt is recorded, however many failures came before it."""
    for _ in range(25):
        response = await async_client.get("/api/v1/admin/me")
        assert response.status_code == 401

    response = await async_client.post(
        "/oauth/token",
        data={
            "grant_type": "authorization_code",
            "code": "whatever",
            "redirect_uri": "https://app.example.com/cb",
            "client_id": "client_unknown",
            "client_secret": "nope",
        },
    )
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_client"

    rows = (await db_session.execute(select(AuditLog.action, AuditLog.target))).all()
    assert rows.count(("FAILED", "/api/v1/admin/me")) == 25
    assert ("FAILED", "oauth_token") in rows
    assert len(rows) == 26


async def test_write_failure_is_not_raised(db_session: AsyncSession):
    """A broken audit store never breaks the caller."""
    with patch("app.crud.crud_audit_log.create", new_callable=AsyncMock, side_effect=RuntimeError("disk full")):
        result = await audit.record(db_session, actor="system", action=audit.AuditAction.DELETE, target="t")
    assert result is False
    assert await count_entries(db_session) == 0
