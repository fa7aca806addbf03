# auth_api/app/oidc_server.py
from typing import Any, Dict

from authlib.oidc.core import UserInfo

from app.core.config import settings
from app.core.signing import SIGNING_ALGORITHM
from app.models.user import User

SUPPORTED_SCOPES = ["openid", "profile", "email"]


def generate_user_info(user: User, scope: str) -> UserInfo:
    """
    Gera o objeto UserInfo para o ID Token e o endpoint UserInfo,
    baseado nos scopes solicitados.
    """
    # O scope 'openid' é obrigatório e sempre retorna 'sub' (subject ID)
    user_info = UserInfo(sub=str(user.id))

    scopes = set((scope or "").split())
    if "profile" in scopes:
        user_info["name"] = user.full_name
    if "email" in scopes:
        user_info["email"] = user.email
        user_info["email_verified"] = user.is_verified

    return user_info


def openid_configuration() -> Dict[str, Any]:
    """Metadados de descoberta OIDC, todos relativos ao JWT_ISSUER."""
    issuer_url = settings.JWT_ISSUER.rstrip("/")
    return {
        "issuer": issuer_url,
        "authorization_endpoint": f"{issuer_url}/oauth/authorize",
        "token_endpoint": f"{issuer_url}/oauth/token",
        "userinfo_endpoint": f"{issuer_url}/oauth/userinfo",
        "revocation_endpoint": f"{issuer_url}/oauth/revoke",
        "introspection_endpoint": f"{issuer_url}/oauth/introspect",
        "end_session_endpoint": f"{issuer_url}/oauth/logout",
        "jwks_uri": f"{issuer_url}/.well-known/jwks.json",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": [SIGNING_ALGORITHM],
        "scopes_supported": SUPPORTED_SCOPES,
        "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post", "none"],
        "code_challenge_methods_supported": ["S256", "plain"],
        "claims_supported": ["sub", "iss", "aud", "exp", "iat", "auth_time", "nonce", "name", "email", "email_verified"],
    }
