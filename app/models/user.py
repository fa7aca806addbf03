# auth_api/app/models/user.py
from sqlalchemy import String, DateTime, func, Boolean, JSON, false
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional, List

from app.db.base import Base


ADMIN_ROLES = ("admin", "super_admin")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(
        String(100), unique=True, index=True, nullable=False
    )
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(150))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # --- Autorização da consola admin ---
    # role: "user" | "admin" | "super_admin"
    role: Mapped[str] = mapped_column(String(32), default="user", nullable=False)
    # Lista de strings "modulo:acao" (ou "*")
    permissions: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    is_super_admin: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, server_default=false()
    )
    # --- Fim Autorização ---

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now()
    )

    @property
    def is_admin(self) -> bool:
        return self.is_super_admin or self.role in ADMIN_ROLES
