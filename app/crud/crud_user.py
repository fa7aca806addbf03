# auth_api/app/crud/crud_user.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import List, Optional

from app.crud.base import CRUDBase
from app.models.user import User
from app.core.security import get_password_hash, pwd_context, verify_password
from loguru import logger


class CRUDUser(CRUDBase[User]):

    async def get_by_email(self, db: AsyncSession, *, email: str) -> Optional[User]:
        stmt = select(User).filter(User.email == email.lower())
        result = await db.execute(stmt)
        return result.scalars().first()

    async def create(
        self,
        db: AsyncSession,
        *,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: str = "user",
        permissions: Optional[List[str]] = None,
        is_super_admin: bool = False,
        is_verified: bool = True,
    ) -> User:
        db_obj = User(
            email=email.lower(),
            hashed_password=get_password_hash(password),
            full_name=full_name,
            role=role,
            permissions=permissions or [],
            is_super_admin=is_super_admin,
            is_active=True,
            is_verified=is_verified,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def authenticate(self, db: AsyncSession, *, email: str, password: str) -> Optional[User]:
        """
        Autentica um usuário por email e senha.
        Contas inativas ou sem senha (SSO externo) nunca autenticam por senha.
        """
        user = await self.get_by_email(db, email=email)
        if not user:
            # Mesmo custo de hash para emails inexistentes
            pwd_context.dummy_verify()
            return None

        if not user.hashed_password:
            logger.warning(f"Tentativa de login com senha para conta sem senha (user ID {user.id}).")
            return None

        if not verify_password(password, user.hashed_password):
            logger.warning(f"Senha incorreta para user ID {user.id}.")
            return None

        if not user.is_active:
            logger.warning(f"Tentativa de login (senha correta) para conta inativa: user ID {user.id}")
            return None

        return user

# Instância única do CRUD para ser usada nos endpoints
user = CRUDUser(User)
