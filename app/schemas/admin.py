# auth_api/app/schemas/admin.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class AdminIdentity(BaseModel):
    """Identidade derivada de uma sessão admin válida. Vive apenas durante um request."""
    id: int
    email: str
    role: str
    permissions: List[str] = []
    is_super_admin: bool = False


class OAuthClientCreate(BaseModel):
    client_name: str
    redirect_uris: List[str] = Field(..., min_length=1)
    is_confidential: bool = True
    require_pkce: bool = False
    scope: str = "openid profile email"
    application_id: Optional[str] = None


class OAuthClientInfo(BaseModel):
    client_id: str
    client_name: Optional[str]
    redirect_uris: List[str]
    is_confidential: bool
    require_pkce: bool
    is_active: bool
    scope: str
    application_id: Optional[str]

    class Config:
        from_attributes = True


class OAuthClientCreated(OAuthClientInfo):
    # Só devolvido na criação
    client_secret: Optional[str] = None


class AuditLogEntry(BaseModel):
    id: int
    actor: str
    action: str
    target: str
    event_metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
