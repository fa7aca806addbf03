# auth_api/app/core/signing.py
"""
Chave de assinatura OIDC (RS256), estado global do processo.

Carregada uma única vez no arranque a partir de OIDC_PRIVATE_JWK_JSON e nunca
alterada depois. Leituras não precisam de lock.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from authlib.jose import JsonWebKey
from loguru import logger

from app.core.config import settings

SIGNING_ALGORITHM = "RS256"


@dataclass(frozen=True)
class SigningKeys:
    kid: str
    private_pem: str
    public_pem: str
    public_jwks: Dict[str, Any] = field(default_factory=dict)


_signing_keys: Optional[SigningKeys] = None


def load_signing_keys(private_jwk_json: str, kid: str) -> SigningKeys:
    """Valida o JWK privado e deriva o PEM público e o JWKSet."""
    if not private_jwk_json:
        raise ValueError("OIDC_PRIVATE_JWK_JSON não definida.")

    private_jwk = json.loads(private_jwk_json)
    if private_jwk.get("kty") != "RSA" or "d" not in private_jwk:
        raise ValueError("OIDC_PRIVATE_JWK_JSON inválido: esperada uma chave RSA privada em formato JWK.")

    key = JsonWebKey.import_key(private_jwk, {"use": "sig"})
    public_jwk = key.as_dict(is_private=False)
    public_jwk.update({"kid": private_jwk.get("kid") or kid, "use": "sig", "alg": SIGNING_ALGORITHM})

    return SigningKeys(
        kid=public_jwk["kid"],
        private_pem=key.as_pem(is_private=True).decode("utf-8"),
        public_pem=key.as_pem(is_private=False).decode("utf-8"),
        public_jwks={"keys": [public_jwk]},
    )


def init_signing_keys() -> SigningKeys:
    global _signing_keys
    if _signing_keys is None:
        _signing_keys = load_signing_keys(settings.OIDC_PRIVATE_JWK_JSON, settings.OIDC_KEY_ID)
        logger.info(f"Chave OIDC carregada (kid: {_signing_keys.kid}).")
    return _signing_keys


def get_signing_keys() -> SigningKeys:
    if _signing_keys is None:
        raise RuntimeError("Chaves de assinatura OIDC não inicializadas.")
    return _signing_keys


def generate_private_jwk(kid: str) -> Dict[str, Any]:
    """Gera um par RSA 2048 novo em formato JWK (dev/testes)."""
    key = JsonWebKey.generate_key("RSA", 2048, is_private=True)
    jwk = key.as_dict(is_private=True)
    jwk["kid"] = kid
    return jwk
