"""
Client credential extraction for the HTTP binding. RFC 6749 §2.3.1.
Credentials via Authorization: Basic base64(client_id:client_secret) or client_id + client_secret in form.
Verification itself is done by the registry.
"""
import base64
import binascii
import logging

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


def _parse_basic(header_value: str) -> tuple[str, str] | None:
    """Parse 'Basic <base64(client_id:client_secret)>'. Returns (client_id, client_secret) or None."""
    if not header_value or not header_value.strip().lower().startswith("basic "):
        return None
    try:
        encoded = header_value.strip()[6:].strip()
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.debug("Malformed Basic authorization header")
        return None
    if ":" not in decoded:
        return None
    client_id, _, client_secret = decoded.partition(":")
    return (client_id.strip(), client_secret)


def get_client_credentials_from_request(
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> tuple[str | None, str | None]:
    """
    Get (client_id, client_secret) from form or Authorization Basic.
    Form takes precedence if both present.
    """
    if client_id_form and client_secret_form is not None:
        return (client_id_form.strip(), client_secret_form)
    auth_header = request.headers.get("Authorization")
    basic = _parse_basic(auth_header) if auth_header else None
    if basic:
        return basic
    if client_id_form:
        return (client_id_form.strip(), client_secret_form)
    return (None, None)


def require_client_credentials(
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> tuple[str, str]:
    """Like get_client_credentials_from_request, but 401 invalid_client when either part is missing."""
    client_id, client_secret = get_client_credentials_from_request(request, client_id_form, client_secret_form)
    if not client_id or client_secret is None:
        raise HTTPException(
            status_code=401,
            detail={"error": "invalid_client", "error_description": "client_id and client_secret are required"},
            headers={"WWW-Authenticate": "Basic"},
        )
    return client_id, client_secret
