"""
Access token verification endpoint (POST /verify). Read-only.
"""
from fastapi import APIRouter, Depends, Form

from oauth_runtime.dependencies import get_token_service
from oauth_runtime.errors import OAuthError, to_http_exception
from oauth_runtime.service import TokenService

router = APIRouter()


@router.post("/verify")
async def verify(
    token: str = Form(...),
    verb: str | None = Form(None),
    path: str | None = Form(None),
    service: TokenService = Depends(get_token_service),
):
    """Return the identity of the application that owns the token; 400 invalid_request if unknown or expired."""
    try:
        result = await service.verify_token(token.strip(), verb=verb, path=path)
    except OAuthError as exc:
        raise to_http_exception(exc) from exc
    return {"app_id": result.app_id, "client_id": result.client_id, "scope": result.scope}
