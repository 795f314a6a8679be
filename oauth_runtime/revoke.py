"""
Token invalidation endpoint (POST /invalidate).
The client must authenticate; nothing is deleted unless authentication succeeds.
"""

from fastapi import APIRouter, Depends, Form, Request

from oauth_runtime.client_auth import require_client_credentials
from oauth_runtime.dependencies import get_token_service
from oauth_runtime.errors import OAuthError, to_http_exception
from oauth_runtime.grants import InvalidateRequest
from oauth_runtime.service import TokenService

router = APIRouter()


@router.post("/invalidate")
async def invalidate(
    request: Request,
    token: str | None = Form(None),
    refresh_token: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    service: TokenService = Depends(get_token_service),
):
    """Delete an access token and/or refresh token. Unknown tokens are not an error."""
    cid, secret = require_client_credentials(request, client_id, client_secret)
    try:
        await service.invalidate_token(
            InvalidateRequest(
                client_id=cid,
                client_secret=secret,
                access_token=(token or "").strip() or None,
                refresh_token=(refresh_token or "").strip() or None,
            )
        )
    except OAuthError as exc:
        raise to_http_exception(exc) from exc
    return {}
