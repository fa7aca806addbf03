# auth_api/main.py
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger

# --- Imports slowapi (Rate Limiting) ---
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# --- Imports da Aplicação ---
from app.core.config import settings
from app.core.exceptions import AuthenticationError, InvalidTokenError, OAuthError
from app.core.signing import init_signing_keys
from app.db.session import dispose_engine
from app.api.endpoints import admin, admin_auth, oauth, oidc, users

# --- Logging ---
logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL)

# --- Chave de assinatura OIDC (carregada uma única vez) ---
try:
    init_signing_keys()
except (ValueError, TypeError) as e:
    logger.critical(f"ERRO FATAL: Falha ao carregar a chave JWK OIDC da configuração: {e}")
    logger.critical("Verifique a variável OIDC_PRIVATE_JWK_JSON no seu .env ou ambiente.")
    sys.exit(1)

# --- Configuração do FastAPI ---
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=not settings.TESTING,
)

app = FastAPI(
    title="Boundary SSO",
    description="OAuth2/OIDC token service e gate de autenticação da consola admin",
    version="1.2.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

USERS_PREFIX = "/api/v1/users"


@app.middleware("http")
async def users_cors_echo(request: Request, call_next):
    """
    Rotas de identidade do utilizador (/api/v1/users/*) são chamadas a partir de
    qualquer origem da app: ecoa o Origin com credenciais em TODAS as respostas,
    incluindo erros e preflight.
    """
    if not request.url.path.startswith(USERS_PREFIX):
        return await call_next(request)

    origin = request.headers.get("origin")
    if request.method == "OPTIONS" and origin:
        response = Response(status_code=204)
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = (
            request.headers.get("access-control-request-headers") or "Authorization, Content-Type"
        )
        response.headers["Access-Control-Max-Age"] = "600"
    else:
        try:
            response = await call_next(request)
        except Exception as e:
            # Erros não tratados também saem com os headers CORS
            logger.exception(f"Erro inesperado em {request.url.path}: {e}")
            response = JSONResponse(status_code=500, content={"error": "Internal server error"})

    if origin:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"
    return response


# --- Handlers de erro ---

@app.exception_handler(OAuthError)
async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
    if isinstance(exc, InvalidTokenError):
        headers["WWW-Authenticate"] = 'Bearer error="invalid_token"'
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


# --- Routers ---
api_prefix = "/api/v1"

app.include_router(oauth.router, prefix="/oauth", tags=["OAuth2"])
app.include_router(oidc.router, prefix="/.well-known", tags=["OIDC Discovery"])
app.include_router(admin_auth.router, prefix=f"{api_prefix}/admin/auth", tags=["Admin Auth"])
app.include_router(admin.router, prefix=f"{api_prefix}/admin", tags=["Admin"])
app.include_router(users.router, prefix=USERS_PREFIX, tags=["Users"])


# --- Evento de Shutdown e Rota Raiz ---
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down: Disposing database engine...")
    await dispose_engine()
    logger.info("Database engine disposed.")


@app.get("/")
def read_root():
    return {"message": "Boundary SSO is running!"}
