# auth_api/app/models/oauth2_authorization_code.py
from sqlalchemy import String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional

from app.db.base import Base

class OAuth2AuthorizationCode(Base):
    """
    Armazena temporariamente os códigos de autorização gerados
    durante o fluxo OIDC Authorization Code.

    Só o hash SHA-256 do código é guardado. `used_at` preenchido = código consumido.
    """
    __tablename__ = "oauth2_authorization_codes"

    id: Mapped[int] = mapped_column(primary_key=True)
    code_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    client_id: Mapped[str] = mapped_column(String(48), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    redirect_uri: Mapped[str] = mapped_column(Text, nullable=False)
    scope: Mapped[Optional[str]] = mapped_column(Text)

    # Campos OIDC adicionais
    nonce: Mapped[Optional[str]] = mapped_column(String(255))
    code_challenge: Mapped[Optional[str]] = mapped_column(String(128)) # Para PKCE
    code_challenge_method: Mapped[Optional[str]] = mapped_column(String(16)) # "S256" ou "plain"

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    user: Mapped["User"] = relationship() # type: ignore

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def is_used(self) -> bool:
        return self.used_at is not None
