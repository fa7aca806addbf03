# tests/test_05_admin_routes.py
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.crud import crud_oauth_client, crud_session
from app.crud.crud_user import user as crud_user
from app.services.client_validator import validate_client

pytestmark = pytest.mark.asyncio

ADMIN_PASSWORD = "AdminPassword123!"


async def login_admin(async_client: AsyncClient, email: str, password: str = ADMIN_PASSWORD) -> str:
    response = await async_client.post("/api/v1/admin/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


async def test_admin_login_issues_opaque_session_token(async_client: AsyncClient, admin_user):
    response = await async_client.post(
        "/api/v1/admin/auth/login", json={"email": admin_user.email, "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_at"]
    # Token opaco, não um JWT
    assert data["access_token"].count(".") == 0
    assert settings.ADMIN_SESSION_COOKIE_NAME in response.cookies

    me = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == admin_user.email


async def test_admin_login_wrong_password(async_client: AsyncClient, admin_user):
    response = await async_client.post(
        "/api/v1/admin/auth/login", json={"email": admin_user.email, "password": "wrong"}
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


async def test_admin_login_rejects_regular_users(async_client: AsyncClient, regular_user):
    response = await async_client.post(
        "/api/v1/admin/auth/login", json={"email": regular_user.email, "password": "UserPassword123!"}
    )
    assert response.status_code == 401


async def test_admin_logout_invalidates_session(async_client: AsyncClient, admin_user):
    token = await login_admin(async_client, admin_user.email)
    headers = {"Authorization": f"Bearer {token}"}

    logout = await async_client.post("/api/v1/admin/auth/logout", headers=headers)
    assert logout.status_code == 204

    async_client.cookies.clear()
    me = await async_client.get("/api/v1/admin/me", headers=headers)
    assert me.status_code == 401


async def test_list_and_revoke_sessions(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    admin = await crud_user.create(
        db_session, email="ops@example.com", password=ADMIN_PASSWORD, role="admin",
        permissions=["sessions:*"],
    )
    token = await admin_token(admin)
    other_token = await admin_token(admin)
    headers = {"Authorization": f"Bearer {token}"}

    listing = await async_client.get("/api/v1/admin/sessions", headers=headers, params={"kind": "admin"})
    assert listing.status_code == 200
    sessions = listing.json()
    assert len(sessions) == 2

    other = await crud_session.get_by_access_token(db_session, token=other_token)
    assert other.id in {s["id"] for s in sessions}

    revoke = await async_client.delete(f"/api/v1/admin/sessions/{other.id}", headers=headers)
    assert revoke.status_code == 204

    remaining = await async_client.get("/api/v1/admin/sessions", headers=headers, params={"kind": "admin"})
    assert other.id not in [s["id"] for s in remaining.json()]
    assert len(remaining.json()) == 1

    # O token da sessão revogada deixa de abrir rotas admin
    denied = await async_client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {other_token}"})
    assert denied.status_code == 401


async def test_revoke_unknown_session(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    admin = await crud_user.create(
        db_session, email="ops@example.com", password=ADMIN_PASSWORD, role="admin", permissions=["*"]
    )
    token = await admin_token(admin)
    response = await async_client.delete("/api/v1/admin/sessions/9999", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 404


async def test_register_oauth_client(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    """Registration returns the secret exactly once, and that secret authenticates the client."""
    admin = await crud_user.create(
        db_session, email="clients@example.com", password=ADMIN_PASSWORD, role="admin",
        permissions=["oauth_clients:read", "oauth_clients:write"],
    )
    headers = {"Authorization": f"Bearer {await admin_token(admin)}"}

    response = await async_client.post(
        "/api/v1/admin/oauth-clients",
        headers=headers,
        json={
            "client_name": "Partner Portal",
            "redirect_uris": ["https://partner.example.com/cb"],
            "application_id": "tenant-1",
        },
    )
    assert response.status_code == 201, response.text
    created = response.json()
    assert created["client_secret"]
    assert created["is_confidential"] is True
    assert created["redirect_uris"] == ["https://partner.example.com/cb"]

    client = await validate_client(db_session, created["client_id"], created["client_secret"])
    assert client.application_id == "tenant-1"
    stored = await crud_oauth_client.get_by_client_id(db_session, client_id=created["client_id"])
    assert stored.client_secret_hash != created["client_secret"]

    listing = await async_client.get("/api/v1/admin/oauth-clients", headers=headers)
    assert listing.status_code == 200
    assert [c["client_id"] for c in listing.json()] == [created["client_id"]]
    assert "client_secret" not in listing.json()[0]


async def test_register_public_client_forces_pkce(async_client: AsyncClient, db_session: AsyncSession, admin_token):
    admin = await crud_user.create(
        db_session, email="clients@example.com", password=ADMIN_PASSWORD, role="admin", permissions=["oauth_clients:*"],
    )
    response = await async_client.post(
        "/api/v1/admin/oauth-clients",
        headers={"Authorization": f"Bearer {await admin_token(admin)}"},
        json={"client_name": "SPA", "redirect_uris": ["https://spa.example.com/cb"], "is_confidential": False},
    )
    assert response.status_code == 201
    created = response.json()
    assert created["client_secret"] is None
    assert created["require_pkce"] is True


async def test_audit_log_listing(async_client: AsyncClient, admin_user, admin_token):
    token = await admin_token(admin_user)
    headers = {"Authorization": f"Bearer {token}"}
    await async_client.post("/oauth/revoke", data={"token": "unknown"})

    response = await async_client.get("/api/v1/admin/audit-logs", headers=headers, params={"action": "DELETE"})
    assert response.status_code == 200
    entries = response.json()
    assert len(entries) == 1
    assert entries[0]["target"] == "oauth_revoke"
    assert entries[0]["actor"] == "anonymous"
