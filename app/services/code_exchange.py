# auth_api/app/services/code_exchange.py
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidGrantError,
    InvalidRequestError,
    UnsupportedGrantTypeError,
)
from app.core.security import utcnow, verify_code_verifier
from app.crud import crud_authorization_code
from app.schemas.token import OAuthTokenRequest
from app.services.client_validator import validate_client

AUTHORIZATION_CODE_GRANT = "authorization_code"


@dataclass(frozen=True)
class SessionGrant:
    """Resultado de uma troca bem-sucedida: quem, para que cliente, com que scope."""
    user_id: int
    client_id: str
    scope: str
    nonce: Optional[str] = None
    application_id: Optional[str] = None


async def exchange(db: AsyncSession, form: OAuthTokenRequest) -> SessionGrant:
    """
    Troca um código de autorização por uma SessionGrant.

    O código só é marcado como usado depois de todas as verificações passarem,
    e a marcação é um UPDATE condicional: em pedidos concorrentes só um ganha.
    """
    if form.grant_type != AUTHORIZATION_CODE_GRANT:
        raise UnsupportedGrantTypeError(
            f"Only the '{AUTHORIZATION_CODE_GRANT}' grant type is supported"
        )

    missing = [
        name for name in ("code", "client_id", "redirect_uri") if not getattr(form, name)
    ]
    if missing:
        raise InvalidRequestError(f"Missing required parameter: {', '.join(missing)}")

    client = await validate_client(db, form.client_id, form.client_secret)

    auth_code = await crud_authorization_code.get_by_code(db, code=form.code)
    if auth_code is None or auth_code.client_id != client.client_id:
        raise InvalidGrantError()
    if auth_code.is_used:
        logger.warning(f"Reutilização de código de autorização (ID: {auth_code.id}, cliente {client.client_id}).")
        raise InvalidGrantError()
    if auth_code.is_expired(utcnow()):
        raise InvalidGrantError("The authorization code has expired")

    if form.redirect_uri != auth_code.redirect_uri:
        raise InvalidGrantError("redirect_uri does not match the authorization request")

    if auth_code.code_challenge:
        if not form.code_verifier or not verify_code_verifier(
            form.code_verifier, auth_code.code_challenge, auth_code.code_challenge_method
        ):
            raise InvalidGrantError("PKCE verification failed")
    elif client.is_public or client.require_pkce:
        raise InvalidGrantError("PKCE is required for this client")

    if not await crud_authorization_code.consume(db, code_id=auth_code.id):
        logger.warning(f"Código de autorização (ID: {auth_code.id}) consumido por um pedido concorrente.")
        raise InvalidGrantError()

    return SessionGrant(
        user_id=auth_code.user_id,
        client_id=client.client_id,
        scope=auth_code.scope or "openid",
        nonce=auth_code.nonce,
        application_id=client.application_id,
    )
