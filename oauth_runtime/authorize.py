"""
Authorization endpoint (GET /authorize) for the redirect-based grants.
response_type=code issues an authorization code; response_type=token runs the implicit grant.
Resource owner login and consent happen in front of this endpoint.
"""
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from oauth_runtime.dependencies import get_token_service
from oauth_runtime.errors import InvalidScopeError, OAuthError, to_http_exception
from oauth_runtime.grants import AuthorizationCodeRequest, ImplicitGrant
from oauth_runtime.service import TokenService

router = APIRouter()


def _redirect_error(
    redirect_uri: str,
    exc: OAuthError,
    state: str | None,
    fragment: bool,
) -> RedirectResponse:
    params = exc.to_dict()
    if state:
        params["state"] = state
    separator = "#" if fragment else ("&" if "?" in redirect_uri else "?")
    return RedirectResponse(url=f"{redirect_uri}{separator}{urlencode(params)}", status_code=302)


@router.get("/authorize")
async def authorize(
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    service: TokenService = Depends(get_token_service),
):
    """
    Validate client_id and redirect_uri (exact match), then redirect back with a code (query)
    or an access token (fragment). Problems with client or redirect_uri are reported directly,
    never by redirecting to an unverified URI.
    """
    if response_type not in ("code", "token"):
        raise HTTPException(
            status_code=400,
            detail={"error": "unsupported_response_type", "error_description": "response_type must be 'code' or 'token'"},
        )
    if not client_id or not redirect_uri:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_request", "error_description": "client_id and redirect_uri are required"},
        )

    implicit = response_type == "token"
    try:
        if implicit:
            location = await service.create_token_implicit(
                ImplicitGrant(client_id=client_id, redirect_uri=redirect_uri, scope=scope, state=state)
            )
        else:
            location = await service.generate_authorization_code(
                AuthorizationCodeRequest(client_id=client_id, redirect_uri=redirect_uri, scope=scope, state=state)
            )
    except InvalidScopeError as exc:
        # redirect_uri was verified before scope resolution
        return _redirect_error(redirect_uri, exc, state, fragment=implicit)
    except OAuthError as exc:
        raise to_http_exception(exc) from exc
    return RedirectResponse(url=location, status_code=302)
