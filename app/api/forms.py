# auth_api/app/api/forms.py
"""
Normalização dos corpos dos endpoints /oauth/*.

Os clientes enviam JSON ou application/x-www-form-urlencoded; ambos acabam
num modelo pydantic com campos opcionais explícitos antes de chegar aos serviços.
"""
import base64
import binascii
import json
from typing import Optional, Tuple, Type, TypeVar
from urllib.parse import unquote

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.core.exceptions import InvalidClientError, InvalidRequestError

FormModel = TypeVar("FormModel", bound=BaseModel)


async def parse_oauth_body(request: Request, model: Type[FormModel]) -> FormModel:
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidRequestError("Request body is not valid JSON")
        if not isinstance(data, dict):
            raise InvalidRequestError("Request body must be a JSON object")
    else:
        form = await request.form()
        data = {key: value for key, value in form.items() if isinstance(value, str)}

    # Strings vazias contam como ausentes
    data = {key: value for key, value in data.items() if value not in ("", None)}

    try:
        return model.model_validate(data)
    except ValidationError:
        raise InvalidRequestError("Request parameters are malformed")


def parse_basic_client_auth(request: Request) -> Optional[Tuple[str, str]]:
    """
    Credenciais do cliente via HTTP Basic (RFC 6749 §2.3.1).
    Retorna None se não houver header Basic; header malformado -> invalid_client.
    """
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise InvalidClientError("Malformed Basic authorization header")
    client_id, sep, client_secret = decoded.partition(":")
    if not sep or not client_id:
        raise InvalidClientError("Malformed Basic authorization header")
    return unquote(client_id), unquote(client_secret)


def apply_client_auth(request: Request, form: FormModel) -> FormModel:
    """Credenciais Basic, quando presentes, substituem as do corpo."""
    basic = parse_basic_client_auth(request)
    if basic is None:
        return form
    client_id, client_secret = basic
    return form.model_copy(update={"client_id": client_id, "client_secret": client_secret or None})
