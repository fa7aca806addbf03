# auth_api/app/core/exceptions.py
from typing import Dict


class OAuthError(Exception):
    """
    Erro do protocolo OAuth2 (RFC 6749 §5.2).

    Renderizado como {"error": ..., "error_description": ...} pelo handler em main.py.
    """
    error: str = "server_error"
    status_code: int = 500
    default_description: str = "An unexpected error occurred"

    def __init__(self, description: str | None = None):
        self.description = description or self.default_description
        super().__init__(self.description)

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.error, "error_description": self.description}


class InvalidRequestError(OAuthError):
    error = "invalid_request"
    status_code = 400
    default_description = "The request is missing a required parameter"


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"
    status_code = 400
    default_description = "The authorization grant type is not supported"


class InvalidGrantError(OAuthError):
    error = "invalid_grant"
    status_code = 400
    default_description = "The authorization code is invalid, expired or already used"


class InvalidClientError(OAuthError):
    error = "invalid_client"
    status_code = 401
    default_description = "Invalid client credentials"


class InvalidTokenError(OAuthError):
    error = "invalid_token"
    status_code = 401
    default_description = "Token is invalid or expired"


class ServerError(OAuthError):
    pass


class AuthenticationError(Exception):
    """
    Falha do gate de autenticação/autorização das rotas protegidas.
    Renderizado como {"error": message} com o status indicado.
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
