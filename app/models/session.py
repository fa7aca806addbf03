# auth_api/app/models/session.py
from sqlalchemy import String, Text, DateTime, func, ForeignKey, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional

from app.db.base import Base


class SessionKind:
    """Namespaces de token. Uma sessão de um tipo nunca valida rotas de outro."""
    ADMIN = "admin"
    USER = "user"
    OAUTH = "oauth"


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    client_id: Mapped[Optional[str]] = mapped_column(String(48), nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Guardamos apenas hashes SHA-256, NUNCA o token em si
    access_token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    refresh_token_hash: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    refresh_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Tenant ao qual a sessão pertence (opcional)
    application_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    user: Mapped["User"] = relationship() # type: ignore

    __table_args__ = (
        Index("ix_sessions_user_kind", "user_id", "kind"),
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
