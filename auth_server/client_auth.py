"""
Client authentication at the token endpoint. RFC 6749 §2.3.1.
Credentials via Authorization: Basic base64(client_id:client_secret) or client_id + client_secret in form.
"""
import base64
import binascii
import logging
from urllib.parse import unquote_plus

from fastapi import Request

from auth_server.errors import InvalidClient
from auth_server.registry import Client, ClientRegistry

logger = logging.getLogger(__name__)


def _parse_basic(header_value: str | None) -> tuple[str, str] | None:
    """Parse 'Basic <base64(client_id:client_secret)>'. Returns (client_id, client_secret) or None."""
    if not header_value or not header_value.strip().lower().startswith("basic "):
        return None
    try:
        encoded = header_value.strip()[6:].strip()
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    client_id, _, client_secret = decoded.partition(":")
    # RFC 6749 §2.3.1: both parts are form-urlencoded before base64
    return unquote_plus(client_id.strip()), unquote_plus(client_secret)


def get_client_credentials_from_request(
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> tuple[str | None, str | None]:
    """
    Get (client_id, client_secret) from Authorization Basic or from form.
    Basic takes precedence when present.
    """
    basic = _parse_basic(request.headers.get("Authorization"))
    if basic:
        return basic
    if client_id_form:
        return client_id_form.strip(), client_secret_form
    return None, None


def authenticate_client(
    registry: ClientRegistry,
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> Client:
    """
    Resolve and authenticate the client. Confidential clients must present a matching secret.
    Raises InvalidClient otherwise.
    """
    client_id, client_secret = get_client_credentials_from_request(request, client_id_form, client_secret_form)
    if not client_id:
        raise InvalidClient("client_id is required")
    client = registry.lookup(client_id)
    if client is None:
        logger.info("Token request from unknown client_id=%s", client_id)
        raise InvalidClient("Unknown client")
    if client.is_confidential and not client.verify_secret(client_secret):
        logger.info("Invalid client secret for client_id=%s", client_id)
        raise InvalidClient("Invalid client credentials")
    return client
