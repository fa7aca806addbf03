# auth_api/app/db/session.py
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

engine_kwargs = {"pool_pre_ping": True}
# SQLite (testes/dev) usa um pool sem timeout configurável
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT_SECONDS

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def dispose_engine() -> None:
    await engine.dispose()
