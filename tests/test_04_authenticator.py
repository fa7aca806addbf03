# tests/test_04_authenticator.py
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.permissions import has_permission
from app.core.security import generate_opaque_token, utcnow
from app.crud import crud_session
from app.crud.crud_user import user as crud_user
from app.models.audit_log import AuditLog
from app.models.session import SessionKind
from app.schemas.admin import AdminIdentity
from app.services.authenticator import OpaqueSessionToken, SignedToken, parse_token

pytestmark = pytest.mark.asyncio


def identity(permissions, is_super_admin=False) -> AdminIdentity:
    return AdminIdentity(
        id=1, email="a@example.com", role="admin", permissions=permissions, is_super_admin=is_super_admin
    )


# --- Unidades ---

async def test_parse_token_variants():
    assert parse_token("aaa.bbb.ccc") == SignedToken("aaa.bbb.ccc")
    assert parse_token("opaque-reference_token") == OpaqueSessionToken("opaque-reference_token")
    assert isinstance(parse_token("a..c"), OpaqueSessionToken)


async def test_has_permission_rules():
    assert has_permission(identity(["*"]), "sessions:read")
    assert has_permission(identity(["sessions:read"]), "sessions:read")
    assert has_permission(identity(["sessions:*"]), "sessions:revoke")
    assert not has_permission(identity(["sessions:read"]), "sessions:revoke")
    assert not has_permission(identity(["audit:*"]), "sessions:read")
    assert not has_permission(identity([]), "sessions:read")
    assert has_permission(identity([], is_super_admin=True), "oauth_clients:write")
    assert not has_permission(None, "sessions:read")


# --- Gate das rotas admin ---

async def test_missing_token(async_client: AsyncClient):
    response = await async_client.get("/api/v1/admin/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing access token"}


async def test_unknown_token(async_client: AsyncClient):
    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_valid_admin_session(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user)
    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == admin_user.id
    assert data["email"] == admin_user.email
    assert data["role"] == "admin"
    assert data["permissions"] == ["sessions:read", "audit:read"]
    assert data["is_super_admin"] is False


async def test_cookie_fallback(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user)
    response = await async_client.get(
        "/api/v1/admin/me", headers={"Cookie": f"{settings.ADMIN_SESSION_COOKIE_NAME}={token}"}
    )
    assert response.status_code == 200


async def test_expired_session_rejected(async_client: AsyncClient, admin_user, admin_token):
    """A well-formed token whose session expired is rejected with 401."""
    token = await admin_token(admin_user, expires_in=timedelta(seconds=-1))
    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_inactive_session_rejected(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user, is_active=False)
    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_inactive_user_rejected(async_client: AsyncClient, db_session: AsyncSession, admin_user, admin_token):
    token = await admin_token(admin_user)
    admin_user.is_active = False
    db_session.add(admin_user)
    await db_session.commit()

    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_non_admin_session_is_forbidden(async_client: AsyncClient, regular_user, admin_token):
    token = await admin_token(regular_user)
    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json() == {"error": "Permission denied"}


async def test_user_token_not_valid_on_admin_routes(async_client: AsyncClient, regular_user):
    """End-user signed tokens live in another namespace and never open admin routes."""
    login = await async_client.post(
        "/api/v1/users/login", json={"email": regular_user.email, "password": "UserPassword123!"}
    )
    async_client.cookies.clear()
    token = login.json()["access_token"]

    response = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_admin_token_not_valid_on_user_routes(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user)
    response = await async_client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


async def test_permission_denied(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user)
    response = await async_client.get(
        "/api/v1/admin/oauth-clients", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Permission denied"}


async def test_wildcard_permission(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    admin = await crud_user.create(
        db_session, email="root@example.com", password="RootPassword123!", role="admin", permissions=["*"]
    )
    token = await admin_token(admin)
    response = await async_client.get(
        "/api/v1/admin/oauth-clients", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 200


async def test_super_admin_has_every_permission(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    admin = await crud_user.create(
        db_session, email="super@example.com", password="SuperPassword123!", role="super_admin", is_super_admin=True
    )
    token = await admin_token(admin)
    response = await async_client.get(
        "/api/v1/admin/audit-logs", headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 200


async def test_expired_signed_token(async_client: AsyncClient, db_session: AsyncSession, regular_user):
    """An expired signed token is rejected with the generic body."""
    db_obj = await crud_session.create_session(
        db_session,
        user_id=regular_user.id,
        kind=SessionKind.USER,
        access_token=generate_opaque_token(),
        expires_at=utcnow() + timedelta(hours=1),
    )
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = jwt.encode(
        {
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
            "sub": str(regular_user.id),
            "sid": db_obj.id,
            "token_type": "access",
            "iat": past - timedelta(hours=1),
            "exp": past,
        },
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )

    response = await async_client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_tampered_signed_token(async_client: AsyncClient, regular_user):
    login = await async_client.post(
        "/api/v1/users/login", json={"email": regular_user.email, "password": "UserPassword123!"}
    )
    async_client.cookies.clear()
    token = login.json()["access_token"]
    header, payload, signature = token.split(".")
    tampered = f"{header}.{payload}.{signature[:-4]}AAAA"

    response = await async_client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {tampered}"})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_gate_attempts_are_audited(async_client: AsyncClient, db_session: AsyncSession, admin_user, admin_token):
    token = await admin_token(admin_user)
    await async_client.get("/api/v1/admin/me")
    await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})

    result = await db_session.execute(select(AuditLog).where(AuditLog.target == "/api/v1/admin/me").order_by(AuditLog.id))
    entries = result.scalars().all()
    assert [e.action for e in entries] == ["FAILED", "ACCESS"]
    assert entries[0].actor == "anonymous"
    assert entries[0].event_metadata["reason"] == "missing_token"
    assert entries[1].actor == str(admin_user.id)


async def test_last_activity_write_is_throttled(db_session: AsyncSession, admin_user):
    db_obj = await crud_session.create_session(
        db_session,
        user_id=admin_user.id,
        kind=SessionKind.ADMIN,
        access_token=generate_opaque_token(),
        expires_at=utcnow() + timedelta(hours=1),
    )
    first_seen = db_obj.last_activity_at

    assert await crud_session.touch_activity(db_session, db_session=db_obj, now=first_seen + timedelta(seconds=5)) is False
    assert db_obj.last_activity_at == first_seen

    later = first_seen + timedelta(seconds=settings.SESSION_ACTIVITY_UPDATE_SECONDS + 1)
    assert await crud_session.touch_activity(db_session, db_session=db_obj, now=later) is True
    assert db_obj.last_activity_at == later
