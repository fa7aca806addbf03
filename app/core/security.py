import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from passlib.context import CryptContext  # type: ignore
from jose import jwt, JWTError  # type: ignore
from loguru import logger

from .config import settings
from app.models.user import User as UserModel

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

PKCE_METHODS = ("S256", "plain")


def utcnow() -> datetime:
    """UTC 'naive', o formato guardado nas colunas DateTime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- VERIFICAÇÃO E HASH ---
def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        # Limita o tamanho da senha ANTES de passar para o bcrypt (evita erros > 72 bytes)
        password_bytes = plain_password.encode("utf-8")[:72]
        return pwd_context.verify(password_bytes, hashed_password)
    except Exception:
        return False


def get_password_hash(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    return pwd_context.hash(password_bytes)


def hash_client_secret(client_secret: str) -> str:
    return get_password_hash(client_secret)


def verify_client_secret(client_secret: Optional[str], hashed_secret: Optional[str]) -> bool:
    """
    Compara o secret com o hash guardado (passlib compara em tempo constante).
    Sem hash, corre uma verificação fictícia para não expor diferenças de tempo.
    """
    if not client_secret or not hashed_secret:
        pwd_context.dummy_verify()
        return False
    return verify_password(client_secret, hashed_secret)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_opaque_token() -> str:
    return secrets.token_urlsafe(32)


# --- PKCE (RFC 7636) ---
def compute_code_challenge(code_verifier: str, method: str = "S256") -> str:
    if method == "plain":
        return code_verifier
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_code_verifier(code_verifier: str, code_challenge: str, method: Optional[str]) -> bool:
    method = method or "plain"
    if method not in PKCE_METHODS:
        return False
    try:
        expected = compute_code_challenge(code_verifier, method)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected, code_challenge)


# --- Tokens de utilizador final (HS256, auto-contidos) ---
def create_user_access_token(user: UserModel, session_id: int) -> tuple[str, datetime]:
    """
    Token assinado para a app móvel/web. Carrega `sid` para que o gate
    consiga confirmar que a sessão continua ativa (logout/revoke).
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode: Dict[str, Any] = {
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": now,
        "nbf": now,
        "exp": expire,
        "sub": str(user.id),
        "sid": session_id,
        "jti": secrets.token_hex(16),
        "token_type": "access",
        "email": user.email,
        "email_verified": user.is_verified,
        **({"name": user.full_name} if user.full_name else {}),
    }
    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )
    return encoded_jwt, expire.replace(tzinfo=None)


def decode_user_access_token(token: str) -> Dict[str, Any]:
    """
    Verifica assinatura, issuer, audience e expiração.
    Propaga ExpiredSignatureError / JWTError para o chamador distinguir o motivo.
    """
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
        options={"verify_iss": True, "verify_aud": True},
    )
    if payload.get("token_type") != "access":
        logger.warning("Token assinado com token_type inesperado rejeitado.")
        raise JWTError("unexpected token_type")
    return payload


def create_refresh_token() -> tuple[str, datetime]:
    """Refresh token opaco; só o hash fica na sessão."""
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return generate_opaque_token(), expire.replace(tzinfo=None)
