# tests/test_10_end_session.py
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.audit_log import AuditLog

pytestmark = pytest.mark.asyncio

REDIRECT_URI = "https://app.example.com/cb"
USER_PASSWORD = "UserPassword123!"


async def oauth_tokens(async_client: AsyncClient, client, secret, user, issue_code) -> dict:
    code = await issue_code(client, user)
    response = await async_client.post(
        "/oauth/token",
        data={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client.client_id,
            "client_secret": secret,
            "redirect_uri": REDIRECT_URI,
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


async def is_active(async_client: AsyncClient, access_token: str) -> bool:
    response = await async_client.post("/oauth/introspect", data={"token": access_token})
    return response.json()["active"]


async def test_discovery_advertises_end_session_endpoint(async_client: AsyncClient):
    response = await async_client.get("/.well-known/openid-configuration")
    assert response.json()["end_session_endpoint"] == f"{settings.JWT_ISSUER}/oauth/logout"


async def test_logout_with_sso_cookie_ends_user_session(async_client: AsyncClient, regular_user):
    login = await async_client.post(
        "/api/v1/users/login", json={"email": regular_user.email, "password": USER_PASSWORD}
    )
    access_token = login.json()["access_token"]
    assert async_client.cookies.get(settings.USER_SESSION_COOKIE_NAME) == access_token

    response = await async_client.get("/oauth/logout")
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    assert f"{settings.USER_SESSION_COOKIE_NAME}=" in response.headers["set-cookie"]

    async_client.cookies.clear()
    me = await async_client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {access_token}"})
    assert me.status_code == 401


async def test_logout_with_id_token_hint_redirects_with_state(async_client: AsyncClient, regular_user, confidential_client, issue_code):
    client, secret = confidential_client
    tokens = await oauth_tokens(async_client, client, secret, regular_user, issue_code)

    response = await async_client.get(
        "/oauth/logout",
        params={
            "id_token_hint": tokens["id_token"],
            "post_logout_redirect_uri": REDIRECT_URI,
            "state": "bye-123",
        },
    )
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == REDIRECT_URI
    assert parse_qs(location.query) == {"state": ["bye-123"]}

    assert await is_active(async_client, tokens["access_token"]) is False


async def test_logout_rejects_unregistered_redirect_uri(async_client: AsyncClient, db_session: AsyncSession, regular_user, confidential_client, issue_code):
    """An unregistered post_logout_redirect_uri is never followed and nothing is ended."""
    client, secret = confidential_client
    tokens = await oauth_tokens(async_client, client, secret, regular_user, issue_code)

    response = await async_client.get(
        "/oauth/logout",
        params={"id_token_hint": tokens["id_token"], "post_logout_redirect_uri": "https://evil.example.com/"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"
    assert await is_active(async_client, tokens["access_token"]) is True

    result = await db_session.execute(select(AuditLog).where(AuditLog.target == "oauth_logout"))
    assert [e.action for e in result.scalars().all()] == ["FAILED"]


async def test_logout_redirect_needs_an_identified_client(async_client: AsyncClient):
    response = await async_client.get("/oauth/logout", params={"post_logout_redirect_uri": REDIRECT_URI})
    assert response.status_code == 400


async def test_logout_redirect_with_client_id(async_client: AsyncClient, public_client):
    response = await async_client.get(
        "/oauth/logout", params={"client_id": public_client.client_id, "post_logout_redirect_uri": REDIRECT_URI}
    )
    assert response.status_code == 302
    assert response.headers["location"] == REDIRECT_URI


async def test_logout_rejects_bad_id_token_hint(async_client: AsyncClient, regular_user, confidential_client, issue_code):
    garbage = await async_client.get("/oauth/logout", params={"id_token_hint": "a.b.c"})
    assert garbage.status_code == 400

    # Um access token não serve de id_token_hint
    client, secret = confidential_client
    tokens = await oauth_tokens(async_client, client, secret, regular_user, issue_code)
    wrong_kind = await async_client.get("/oauth/logout", params={"id_token_hint": tokens["access_token"]})
    assert wrong_kind.status_code == 400
    assert await is_active(async_client, tokens["access_token"]) is True


async def test_logout_is_audited(async_client: AsyncClient, db_session: AsyncSession, regular_user, confidential_client, issue_code):
    client, secret = confidential_client
    tokens = await oauth_tokens(async_client, client, secret, regular_user, issue_code)

    await async_client.get("/oauth/logout", params={"id_token_hint": tokens["id_token"]})

    result = await db_session.execute(select(AuditLog).where(AuditLog.target == "oauth_logout"))
    entry = result.scalars().one()
    assert entry.action == "LOGOUT"
    assert entry.actor == str(regular_user.id)
    assert len(entry.event_metadata["session_ids"]) == 1
