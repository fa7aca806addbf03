# auth_api/app/core/config.py
import logging
from pydantic_settings import BaseSettings
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = BASE_DIR / ".env"

class Settings(BaseSettings):

    # Core
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    DB_POOL_TIMEOUT_SECONDS: int = 10
    TESTING: bool = False
    LOG_LEVEL: str = "INFO"

    # Tokens de utilizador final (app móvel / web, assinados HS256)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    USER_SESSION_COOKIE_NAME: str = "boundary_session"

    # Sessões da consola de administração (tokens opacos)
    ADMIN_SESSION_EXPIRE_HOURS: int = 24
    ADMIN_SESSION_COOKIE_NAME: str = "boundary_admin_session"

    # Só atualiza last_activity_at se passou este intervalo
    SESSION_ACTIVITY_UPDATE_SECONDS: int = 60

    # OIDC JWT Claims (API como Recurso / IdP)
    # Issuer deve ser a URL base da SUA API
    JWT_ISSUER: str = "http://localhost:8001"
    JWT_AUDIENCE: str = "boundary-apps"

    # OAuth2 / OIDC
    OAUTH_ACCESS_TOKEN_EXPIRE_SECONDS: int = 3600
    AUTHORIZATION_CODE_EXPIRE_MINUTES: int = 10
    OAUTH_OPERATION_TIMEOUT_SECONDS: float = 10.0

    # --- OIDC JWK Key ---
    # Chave privada RSA em formato JWK (JSON); o JWKSet público é derivado dela
    OIDC_PRIVATE_JWK_JSON: str
    OIDC_KEY_ID: str = "boundary-oidc-key-1"

    # Rate limiting (slowapi) e CORS
    RATE_LIMIT_DEFAULT: str = "30/minute"
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    class Config:
        case_sensitive = True
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'

try:
    settings = Settings()

    # Verificação adicional para o JWT_ISSUER (importante para OIDC)
    if not settings.JWT_ISSUER or not settings.JWT_ISSUER.startswith("http"):
        logging.warning(
            f"JWT_ISSUER ('{settings.JWT_ISSUER}') não parece ser uma URL válida. "
            f"Para OIDC funcionar corretamente, defina JWT_ISSUER no .env com a URL base da sua API (ex: http://localhost:8001)"
        )

except Exception as e:
    logging.error(f"FATAL: Erro ao carregar 'settings' a partir do .env em {ENV_FILE_PATH}: {e}")
    raise e
