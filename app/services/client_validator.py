# auth_api/app/services/client_validator.py
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidClientError
from app.core.security import verify_client_secret
from app.crud import crud_oauth_client
from app.models.oauth2_client import OAuth2Client


async def validate_client(
    db: AsyncSession, client_id: Optional[str], client_secret: Optional[str] = None
) -> OAuth2Client:
    """
    Autentica um cliente OAuth para /oauth/token, /oauth/revoke e /oauth/introspect.

    - Cliente inexistente ou desativado -> invalid_client
    - Confidencial: secret obrigatório, comparado com o hash bcrypt
    - Público: aceita sem secret; o PKCE é verificado na troca do código
    """
    if not client_id:
        raise InvalidClientError("Client authentication failed")

    client = await crud_oauth_client.get_by_client_id(db, client_id=client_id)

    if client is None:
        # Mesmo custo de um secret errado
        verify_client_secret(client_secret, None)
        logger.warning("Autenticação de cliente falhou: client_id desconhecido.")
        raise InvalidClientError("Client authentication failed")

    if not client.is_active:
        verify_client_secret(client_secret, None)
        logger.warning(f"Autenticação de cliente falhou: cliente {client.client_id} desativado.")
        raise InvalidClientError("Client authentication failed")

    if client.is_confidential:
        if not verify_client_secret(client_secret, client.client_secret_hash):
            logger.warning(f"Autenticação de cliente falhou: secret inválido para {client.client_id}.")
            raise InvalidClientError("Client authentication failed")

    return client
