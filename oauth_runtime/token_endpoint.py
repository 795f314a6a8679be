"""
Token endpoint (POST /token): client_credentials, password, authorization_code and refresh_token grants.
"""
from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from oauth_runtime.client_auth import require_client_credentials
from oauth_runtime.database import get_db
from oauth_runtime.dependencies import get_token_service
from oauth_runtime.errors import OAuthError, to_http_exception
from oauth_runtime.grants import (
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    PasswordGrant,
    RefreshTokenGrant,
)
from oauth_runtime.seed import verify_user_credentials
from oauth_runtime.service import TokenService

router = APIRouter()

SUPPORTED_GRANT_TYPES = ("client_credentials", "password", "authorization_code", "refresh_token")


def _owner_verifier(db: Session):
    """Resource owner check against the users table; bcrypt runs off the event loop."""

    async def verify(username: str, password: str) -> bool:
        return await run_in_threadpool(verify_user_credentials, db, username, password) is not None

    return verify


def _missing(*names: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": "invalid_request", "error_description": f"{', '.join(names)} required"},
    )


@router.post("/token")
async def token(
    request: Request,
    grant_type: str = Form(...),
    scope: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    refresh_token: str | None = Form(None),
    username: str | None = Form(None),
    password: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    service: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
):
    """
    Issue tokens for the requested grant. Clients authenticate with HTTP Basic or form fields.
    Errors use the RFC 6749 §5.2 body: {"error", "error_description"}.
    """
    if grant_type not in SUPPORTED_GRANT_TYPES:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "unsupported_grant_type",
                "error_description": f"Supported grant types: {', '.join(SUPPORTED_GRANT_TYPES)}",
            },
        )
    cid, secret = require_client_credentials(request, client_id, client_secret)

    try:
        if grant_type == "client_credentials":
            response = await service.create_token_client_credentials(
                ClientCredentialsGrant(client_id=cid, client_secret=secret, scope=scope)
            )
        elif grant_type == "password":
            if not username or not password:
                raise _missing("username", "password")
            response = await service.create_token_password(
                PasswordGrant(client_id=cid, client_secret=secret, username=username, password=password, scope=scope),
                verify_owner=_owner_verifier(db),
            )
        elif grant_type == "authorization_code":
            if not code or not redirect_uri:
                raise _missing("code", "redirect_uri")
            response = await service.create_token_authorization_code(
                AuthorizationCodeGrant(client_id=cid, client_secret=secret, code=code, redirect_uri=redirect_uri)
            )
        else:
            if not refresh_token:
                raise _missing("refresh_token")
            response = await service.refresh_token(
                RefreshTokenGrant(client_id=cid, client_secret=secret, refresh_token=refresh_token, scope=scope)
            )
    except OAuthError as exc:
        raise to_http_exception(exc) from exc
    return response.as_dict()
