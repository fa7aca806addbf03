import os
import json

from authlib.jose import JsonWebKey

# Variáveis de ambiente ANTES de importar a app (settings são lidas no import)
os.environ["TESTING"] = "true"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("JWT_ISSUER", "http://test")
if not os.environ.get("OIDC_PRIVATE_JWK_JSON"):
    _test_jwk = JsonWebKey.generate_key("RSA", 2048, is_private=True).as_dict(is_private=True)
    _test_jwk["kid"] = "test-key-1"
    os.environ["OIDC_PRIVATE_JWK_JSON"] = json.dumps(_test_jwk)

import pytest
from datetime import timedelta
from typing import AsyncGenerator, Optional

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.db.base import Base
from main import app
from app.db.session import get_db
from app.core.security import compute_code_challenge, generate_opaque_token, utcnow
from app.crud import crud_authorization_code, crud_oauth_client, crud_session
from app.crud.crud_user import user as crud_user
from app.models.session import SessionKind
from app.schemas.admin import OAuthClientCreate

# --- CONFIGURAÇÃO DO BANCO DE DADOS DE TESTE ---
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

REDIRECT_URI = "https://app.example.com/cb"
USER_PASSWORD = "UserPassword123!"
ADMIN_PASSWORD = "AdminPassword123!"


@pytest.fixture(scope="session")
def async_engine():
    engine = create_async_engine(TEST_DATABASE_URL)
    yield engine
    engine.sync_engine.dispose()
    try:
        os.remove("test.db")
    except (PermissionError, FileNotFoundError):
        print("Aviso: não foi possível remover 'test.db'.")


@pytest.fixture(scope="session")
def test_session_local(async_engine):
    TestSessionLocal = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    yield TestSessionLocal


@pytest.fixture(scope="function", autouse=True)
async def db_session(async_engine, test_session_local):
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session_local() as session:
        yield session
        await session.close()

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# --- CONFIGURAÇÃO DO CLIENTE HTTP DE TESTE ---

@pytest.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)


# --- FACTORIES ---

@pytest.fixture
async def regular_user(db_session: AsyncSession):
    return await crud_user.create(
        db_session, email="user@example.com", password=USER_PASSWORD, full_name="Regular User"
    )


@pytest.fixture
async def admin_user(db_session: AsyncSession):
    return await crud_user.create(
        db_session,
        email="admin@example.com",
        password=ADMIN_PASSWORD,
        full_name="Admin User",
        role="admin",
        permissions=["sessions:read", "audit:read"],
    )


@pytest.fixture
async def confidential_client(db_session: AsyncSession):
    """Returns (client, plain_secret)."""
    return await crud_oauth_client.create_client(
        db_session,
        obj_in=OAuthClientCreate(client_name="Web Backend", redirect_uris=[REDIRECT_URI]),
    )


@pytest.fixture
async def public_client(db_session: AsyncSession):
    client, _ = await crud_oauth_client.create_client(
        db_session,
        obj_in=OAuthClientCreate(
            client_name="Mobile App", redirect_uris=[REDIRECT_URI], is_confidential=False
        ),
    )
    return client


@pytest.fixture
def issue_code(db_session: AsyncSession):
    """Factory: issues an authorization code and returns the plain value."""

    async def _issue(
        client,
        user,
        redirect_uri: str = REDIRECT_URI,
        scope: str = "openid profile email",
        code_verifier: Optional[str] = None,
        method: str = "S256",
        nonce: Optional[str] = None,
    ) -> str:
        _, plain_code = await crud_authorization_code.create_authorization_code(
            db_session,
            client_id=client.client_id,
            user_id=user.id,
            redirect_uri=redirect_uri,
            scope=scope,
            nonce=nonce,
            code_challenge=compute_code_challenge(code_verifier, method) if code_verifier else None,
            code_challenge_method=method if code_verifier else None,
        )
        return plain_code

    return _issue


@pytest.fixture
def admin_token(db_session: AsyncSession):
    """Factory: creates an admin session for a user and returns the opaque token."""

    async def _create(user, expires_in: timedelta = timedelta(hours=1), is_active: bool = True) -> str:
        token = generate_opaque_token()
        db_obj = await crud_session.create_session(
            db_session,
            user_id=user.id,
            kind=SessionKind.ADMIN,
            access_token=token,
            expires_at=utcnow() + expires_in,
        )
        if not is_active:
            await crud_session.deactivate(db_session, db_session=db_obj)
        return token

    return _create
