# auth_api/app/schemas/token.py
from pydantic import BaseModel, EmailStr
from typing import Literal, Optional
from datetime import datetime


# --- Corpo normalizado dos endpoints /oauth/* ---
# JSON ou form-urlencoded acabam sempre neste formato (ver api/forms.py)

class OAuthTokenRequest(BaseModel):
    grant_type: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    code_verifier: Optional[str] = None


class OAuthRevokeRequest(BaseModel):
    token: Optional[str] = None
    token_type_hint: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None


class OAuthIntrospectRequest(OAuthRevokeRequest):
    pass


class OAuthTokenResponse(BaseModel):
    access_token: str
    id_token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int
    scope: str


class OAuthErrorResponse(BaseModel):
    error: str
    error_description: Optional[str] = None


class IntrospectionResponse(BaseModel):
    """Resposta RFC 7662. Tokens inativos devolvem apenas {"active": false}."""
    active: bool
    sub: Optional[str] = None
    client_id: Optional[str] = None
    scope: Optional[str] = None
    exp: Optional[int] = None
    iat: Optional[int] = None
    token_type: Optional[str] = None


# --- Login de utilizador final (app móvel / web) ---

class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshTokenRequest(BaseModel):
    refresh_token: str


# --- Login da consola admin (token opaco) ---

class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str


class AdminLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class SessionInfo(BaseModel):
    """Informações sobre uma sessão ativa."""
    id: int
    user_id: int
    kind: str
    client_id: Optional[str]
    user_agent: Optional[str]
    ip_address: Optional[str]
    created_at: datetime
    expires_at: datetime
    last_activity_at: Optional[datetime]

    class Config:
        from_attributes = True # Permite mapear diretamente do modelo SQLAlchemy
