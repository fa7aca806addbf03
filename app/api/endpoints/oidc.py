# auth_api/app/api/endpoints/oidc.py
from typing import Any, Dict

from fastapi import APIRouter

from app.core.signing import get_signing_keys
from app.oidc_server import openid_configuration

router = APIRouter()


@router.get("/openid-configuration")
async def read_openid_configuration() -> Dict[str, Any]:
    """Retorna os metadados do servidor OIDC."""
    return openid_configuration()


@router.get("/jwks.json")
async def read_jwks() -> Dict[str, Any]:
    """Retorna as chaves públicas (JWKSet) usadas para assinar os tokens."""
    return get_signing_keys().public_jwks
