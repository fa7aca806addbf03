# auth_api/app/services/token_revoker.py
from typing import List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import crud_session
from app.models.oauth2_client import OAuth2Client
from app.models.session import Session

ACCESS_TOKEN_HINT = "access_token"
REFRESH_TOKEN_HINT = "refresh_token"


def _lookup_order(token_type_hint: Optional[str]) -> List[str]:
    # Hint desconhecido é ignorado (RFC 7009 §2.1): procura nos dois
    if token_type_hint == REFRESH_TOKEN_HINT:
        return [REFRESH_TOKEN_HINT, ACCESS_TOKEN_HINT]
    return [ACCESS_TOKEN_HINT, REFRESH_TOKEN_HINT]


async def _find_session(db: AsyncSession, token: str, token_type_hint: Optional[str]) -> Optional[Session]:
    for kind in _lookup_order(token_type_hint):
        if kind == ACCESS_TOKEN_HINT:
            db_session = await crud_session.get_by_access_token(db, token=token)
        else:
            db_session = await crud_session.get_by_refresh_token(db, token=token)
        if db_session is not None:
            return db_session
    return None


async def revoke(
    db: AsyncSession,
    token: str,
    token_type_hint: Optional[str] = None,
    client: Optional[OAuth2Client] = None,
) -> Optional[Session]:
    """
    Revoga (soft) a sessão que corresponde ao token.

    Nunca falha: token inexistente, de outro cliente ou erro interno resultam
    em None. A autenticação do cliente acontece antes, no endpoint.
    """
    try:
        db_session = await _find_session(db, token, token_type_hint)
        if db_session is None:
            logger.info("Revogação pedida para token desconhecido.")
            return None

        if client is not None and db_session.client_id != client.client_id:
            logger.warning(
                f"Cliente {client.client_id} tentou revogar a sessão ID {db_session.id} de outro cliente."
            )
            return None

        if await crud_session.deactivate(db, db_session=db_session):
            logger.info(f"Sessão ID {db_session.id} ({db_session.kind}) revogada.")
        return db_session
    except Exception as e:
        # Falhas internas não são visíveis ao chamador (RFC 7009)
        logger.error(f"Erro interno ao revogar token: {e}")
        await db.rollback()
        return None
