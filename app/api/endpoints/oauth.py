# auth_api/app/api/endpoints/oauth.py
import asyncio
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from jose import JWTError
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user
from app.api.forms import apply_client_auth, parse_oauth_body
from app.core.config import settings
from app.core.exceptions import (
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidTokenError,
    OAuthError,
    ServerError,
)
from app.core.security import PKCE_METHODS
from app.crud import crud_authorization_code, crud_oauth_client, crud_session
from app.crud.crud_user import user as crud_user
from app.db.session import get_db
from app.models.session import SessionKind
from app.models.user import User as UserModel
from app.oidc_server import generate_user_info
from app.schemas.token import (
    IntrospectionResponse,
    OAuthErrorResponse,
    OAuthIntrospectRequest,
    OAuthRevokeRequest,
    OAuthTokenRequest,
    OAuthTokenResponse,
)
from app.services import audit, code_exchange, token_issuer, token_revoker
from app.services.authenticator import extract_token, find_session
from app.services.client_validator import validate_client

router = APIRouter()

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}

OAUTH_ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": OAuthErrorResponse},
    401: {"model": OAuthErrorResponse},
    500: {"model": OAuthErrorResponse},
}


# --- POST /oauth/token ---

async def _exchange_and_issue(
    db: AsyncSession, form: OAuthTokenRequest, request: Request
) -> Tuple[OAuthTokenResponse, code_exchange.SessionGrant]:
    grant = await code_exchange.exchange(db, form)

    db_user = await crud_user.get(db, id=grant.user_id)
    if db_user is None or not db_user.is_active:
        raise InvalidGrantError("The resource owner is no longer active")

    token_response = await token_issuer.issue_tokens(db, grant=grant, user=db_user, request=request)
    return token_response, grant


async def _audit_token_failure(
    db: AsyncSession, request: Request, form: Optional[OAuthTokenRequest], error: OAuthError
) -> None:
    await audit.record(
        db,
        actor=audit.ANONYMOUS,
        action=audit.AuditAction.FAILED,
        target="oauth_token",
        metadata={
            "client_id": audit.anonymize_client_id(form.client_id if form else None),
            "error": error.error,
            "error_description": error.description,
        },
        request=request,
    )


@router.post("/token", response_model=OAuthTokenResponse, responses=OAUTH_ERROR_RESPONSES)
async def token(request: Request, db: AsyncSession = Depends(get_db)) -> Any:
    """
    Troca um código de autorização por access token + ID token.
    Aceita JSON ou form-urlencoded; credenciais do cliente no corpo ou via Basic.
    """
    form: Optional[OAuthTokenRequest] = None
    try:
        form = apply_client_auth(request, await parse_oauth_body(request, OAuthTokenRequest))
        token_response, grant = await asyncio.wait_for(
            _exchange_and_issue(db, form, request),
            timeout=settings.OAUTH_OPERATION_TIMEOUT_SECONDS,
        )
    except OAuthError as e:
        logger.info(f"/oauth/token rejeitado: {e.error} ({e.description})")
        await _audit_token_failure(db, request, form, e)
        raise
    except asyncio.TimeoutError:
        logger.error(f"/oauth/token excedeu {settings.OAUTH_OPERATION_TIMEOUT_SECONDS}s.")
        error = ServerError("The request could not be completed in time")
        await _audit_token_failure(db, request, form, error)
        raise error
    except Exception as e:
        logger.exception(f"Erro inesperado em /oauth/token: {e}")
        error = ServerError()
        await _audit_token_failure(db, request, form, error)
        raise error

    await audit.record(
        db,
        actor=grant.user_id,
        action=audit.AuditAction.LOGIN,
        target="oauth_token",
        metadata={"client_id": grant.client_id, "scope": grant.scope},
        request=request,
    )
    logger.info(f"Tokens OAuth emitidos para user ID {grant.user_id} (cliente {grant.client_id}).")
    return JSONResponse(content=token_response.model_dump(), headers=NO_STORE_HEADERS)


# --- POST /oauth/revoke (RFC 7009) ---

@router.post("/revoke", status_code=status.HTTP_200_OK, responses=OAUTH_ERROR_RESPONSES)
async def revoke(request: Request, db: AsyncSession = Depends(get_db)) -> Response:
    """
    Revoga um access ou refresh token. Responde sempre 200 com corpo vazio,
    exceto com pedido malformado (400) ou credenciais de cliente inválidas (401).
    """
    form: Optional[OAuthRevokeRequest] = None
    try:
        form = await parse_oauth_body(request, OAuthRevokeRequest)
        form = apply_client_auth(request, form)
    except OAuthError as e:
        # Corpo ou header Basic malformado: também conta como tentativa de revoke
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.DELETE, target="oauth_revoke",
            metadata={
                "client_id": audit.anonymize_client_id(form.client_id if form else None),
                "error": e.error,
            },
            request=request,
        )
        raise

    metadata: Dict[str, Any] = {
        "client_id": form.client_id,
        "token_type_hint": form.token_type_hint,
    }

    if not form.token:
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.DELETE, target="oauth_revoke",
            metadata={**metadata, "error": InvalidRequestError.error}, request=request,
        )
        raise InvalidRequestError("Missing required parameter: token")

    client = None
    revoked = None
    try:
        if form.client_id:
            client = await validate_client(db, form.client_id, form.client_secret)
        revoked = await token_revoker.revoke(db, form.token, form.token_type_hint, client)
    except InvalidClientError as e:
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.DELETE, target="oauth_revoke",
            metadata={**metadata, "client_id": audit.anonymize_client_id(form.client_id), "error": e.error},
            request=request,
        )
        raise
    except Exception as e:
        # Qualquer outra falha continua a ser 200 (RFC 7009 §2.2)
        logger.error(f"Erro interno em /oauth/revoke: {e}")
        await db.rollback()

    await audit.record(
        db,
        actor=revoked.user_id if revoked else audit.ANONYMOUS,
        action=audit.AuditAction.DELETE,
        target="oauth_revoke",
        metadata={**metadata, "revoked": revoked is not None},
        request=request,
    )
    return Response(status_code=status.HTTP_200_OK, headers=NO_STORE_HEADERS)


# --- GET /oauth/authorize ---

def _with_query(uri: str, params: Dict[str, str]) -> str:
    if not params:
        return uri
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{urlencode(params)}"


def _error_redirect(redirect_uri: str, error: str, description: str, state: Optional[str]) -> RedirectResponse:
    params = {"error": error, "error_description": description}
    if state:
        params["state"] = state
    return RedirectResponse(_with_query(redirect_uri, params), status_code=status.HTTP_302_FOUND)


@router.get("/authorize", responses=OAUTH_ERROR_RESPONSES)
async def authorize(
    request: Request,
    response_type: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    scope: str = Query("openid"),
    state: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None),
    code_challenge: Optional[str] = Query(None),
    code_challenge_method: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
) -> RedirectResponse:
    """
    Emite um código de autorização para o utilizador autenticado e redireciona
    para o redirect_uri registado. Erros de cliente/redirect_uri nunca redirecionam.
    """
    if not client_id:
        raise InvalidRequestError("Missing required parameter: client_id")
    client = await crud_oauth_client.get_by_client_id(db, client_id=client_id)
    if client is None or not client.is_active:
        raise InvalidRequestError("Unknown or inactive client_id")
    if not redirect_uri or not client.check_redirect_uri(redirect_uri):
        raise InvalidRequestError("redirect_uri is not registered for this client")

    if response_type != "code":
        return _error_redirect(redirect_uri, "unsupported_response_type", "Only response_type=code is supported", state)
    if "openid" not in scope.split() or not client.check_scope(scope):
        return _error_redirect(redirect_uri, "invalid_scope", "The requested scope is not allowed", state)
    if code_challenge_method and code_challenge_method not in PKCE_METHODS:
        return _error_redirect(redirect_uri, "invalid_request", "Unsupported code_challenge_method", state)
    if not code_challenge and (client.is_public or client.require_pkce):
        return _error_redirect(redirect_uri, "invalid_request", "code_challenge is required for this client", state)

    _, plain_code = await crud_authorization_code.create_authorization_code(
        db,
        client_id=client.client_id,
        user_id=current_user.id,
        redirect_uri=redirect_uri,
        scope=scope,
        nonce=nonce,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
    )
    logger.info(f"Código de autorização emitido para user ID {current_user.id} (cliente {client.client_id}).")

    params = {"code": plain_code}
    if state:
        params["state"] = state
    return RedirectResponse(_with_query(redirect_uri, params), status_code=status.HTTP_302_FOUND)


# --- POST /oauth/introspect (RFC 7662) ---

@router.post(
    "/introspect",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
    responses=OAUTH_ERROR_RESPONSES,
)
async def introspect(request: Request, db: AsyncSession = Depends(get_db)) -> Any:
    form = apply_client_auth(request, await parse_oauth_body(request, OAuthIntrospectRequest))
    if not form.token:
        raise InvalidRequestError("Missing required parameter: token")

    client = None
    if form.client_id:
        try:
            client = await validate_client(db, form.client_id, form.client_secret)
        except InvalidClientError as e:
            await audit.record(
                db, actor=audit.ANONYMOUS, action=audit.AuditAction.FAILED, target="oauth_introspect",
                metadata={"client_id": audit.anonymize_client_id(form.client_id), "error": e.error},
                request=request,
            )
            raise

    verified = await token_issuer.resolve_access_token(db, form.token)
    if verified is None or (client is not None and verified.session.client_id != client.client_id):
        return IntrospectionResponse(active=False)

    claims = verified.claims
    return IntrospectionResponse(
        active=True,
        sub=claims.get("sub"),
        client_id=claims.get("client_id"),
        scope=claims.get("scope"),
        exp=claims.get("exp"),
        iat=claims.get("iat"),
        token_type="Bearer",
    )


# --- GET|POST /oauth/userinfo (OIDC) ---

@router.api_route("/userinfo", methods=["GET", "POST"], responses={401: {"model": OAuthErrorResponse}})
async def userinfo(request: Request, db: AsyncSession = Depends(get_db)) -> Any:
    verified = await token_issuer.resolve_access_token(db, extract_token(request))
    db_user = await crud_user.get(db, id=verified.session.user_id) if verified else None

    if verified is None or db_user is None or not db_user.is_active:
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.FAILED, target="oauth_userinfo",
            metadata={"error": InvalidTokenError.error}, request=request,
        )
        raise InvalidTokenError()

    await audit.record(
        db, actor=db_user.id, action=audit.AuditAction.ACCESS, target="oauth_userinfo",
        metadata={"client_id": verified.session.client_id}, request=request,
    )
    return dict(generate_user_info(db_user, verified.session.scope or "openid"))


# --- GET /oauth/logout (OIDC RP-Initiated Logout) ---

async def _resolve_logout_client(
    db: AsyncSession,
    id_token_hint: Optional[str],
    client_id: Optional[str],
    post_logout_redirect_uri: Optional[str],
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    hint_claims: Optional[Dict[str, Any]] = None
    if id_token_hint:
        try:
            hint_claims = token_issuer.decode_id_token_hint(id_token_hint)
        except JWTError as e:
            logger.info(f"id_token_hint inválido no logout: {e}")
            raise InvalidRequestError("Invalid id_token_hint")
        if client_id and client_id != hint_claims["aud"]:
            raise InvalidRequestError("client_id does not match id_token_hint")
        client_id = hint_claims["aud"]

    if post_logout_redirect_uri:
        client = await crud_oauth_client.get_by_client_id(db, client_id=client_id) if client_id else None
        if client is None or not client.is_active or not client.check_redirect_uri(post_logout_redirect_uri):
            raise InvalidRequestError("post_logout_redirect_uri is not registered for this client")

    return hint_claims, client_id


@router.get("/logout", responses={400: {"model": OAuthErrorResponse}})
async def end_session(
    request: Request,
    id_token_hint: Optional[str] = Query(None),
    post_logout_redirect_uri: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """
    Termina a sessão SSO do utilizador (cookie) e as sessões OAuth do cliente
    indicado pelo id_token_hint. Só redireciona para post_logout_redirect_uri
    se este estiver registado nesse cliente; caso contrário devolve JSON.
    """
    try:
        hint_claims, client_id = await _resolve_logout_client(
            db, id_token_hint, client_id, post_logout_redirect_uri
        )
    except InvalidRequestError as e:
        await audit.record(
            db, actor=audit.ANONYMOUS, action=audit.AuditAction.FAILED, target="oauth_logout",
            metadata={"client_id": audit.anonymize_client_id(client_id), "error": e.error,
                      "error_description": e.description},
            request=request,
        )
        raise

    ended: List[int] = []
    actor: Optional[int] = None

    sso_token = request.cookies.get(settings.USER_SESSION_COOKIE_NAME)
    if sso_token:
        db_session = await find_session(db, sso_token)
        if db_session is not None and db_session.kind == SessionKind.USER:
            actor = db_session.user_id
            if await crud_session.deactivate(db, db_session=db_session):
                ended.append(db_session.id)

    if hint_claims is not None:
        user_id = int(hint_claims["sub"])
        actor = actor or user_id
        for db_session in await crud_session.get_active_sessions(db, user_id=user_id, kind=SessionKind.OAUTH):
            if db_session.client_id == client_id and await crud_session.deactivate(db, db_session=db_session):
                ended.append(db_session.id)

    await audit.record(
        db, actor=actor, action=audit.AuditAction.LOGOUT, target="oauth_logout",
        metadata={"client_id": client_id, "session_ids": ended}, request=request,
    )
    logger.info(f"Logout OIDC: {len(ended)} sessão(ões) terminada(s) (cliente {client_id}).")

    if post_logout_redirect_uri:
        params = {"state": state} if state else {}
        response: Response = RedirectResponse(
            _with_query(post_logout_redirect_uri, params), status_code=status.HTTP_302_FOUND
        )
    else:
        response = JSONResponse(content={"message": "Logged out successfully"})
    response.delete_cookie(
        key=settings.USER_SESSION_COOKIE_NAME,
        path="/",
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="lax",
    )
    return response
