# auth_api/app/models/oauth2_client.py
from sqlalchemy import String, Text, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import List, Optional

from app.db.base import Base

class OAuth2Client(Base):
    """
    Representa uma aplicação cliente registrada que pode usar
    esta API como um Provedor de Identidade OIDC/OAuth2.
    """
    __tablename__ = "oauth2_clients"

    id: Mapped[int] = mapped_column(primary_key=True)
    # client_id e client_secret são gerados por nós e fornecidos à aplicação cliente
    client_id: Mapped[str] = mapped_column(String(48), unique=True, index=True, nullable=False)
    client_secret_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True) # Hash do secret, se confidencial

    client_name: Mapped[Optional[str]] = mapped_column(String(120))
    # Confidencial = consegue guardar um secret (server-side); público = mobile/SPA com PKCE
    is_confidential: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    require_pkce: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Tenant (aplicação) dono deste cliente
    application_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Lista de URIs para onde podemos redirecionar o utilizador após o login
    redirect_uris_str: Mapped[Optional[str]] = mapped_column(Text) # Armazenado como texto separado por espaço
    # Lista de scopes que este cliente pode solicitar (ex: "openid profile email")
    scope_str: Mapped[str] = mapped_column(Text, default="openid profile email", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    @property
    def redirect_uris(self) -> List[str]:
        return self.redirect_uris_str.split() if self.redirect_uris_str else []

    @property
    def scope(self) -> str:
        return self.scope_str or ""

    @property
    def is_public(self) -> bool:
        return not self.is_confidential

    def check_redirect_uri(self, redirect_uri: str) -> bool:
        return redirect_uri in self.redirect_uris

    def check_scope(self, scope: str) -> bool:
        # Verifica se todos os scopes pedidos estão nos scopes permitidos
        requested_scopes = set(scope.split())
        allowed_scopes = set(self.scope.split())
        return requested_scopes.issubset(allowed_scopes)
