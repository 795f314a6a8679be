"""
Request and response structures, one per grant type. Every optional field and its default is listed here.
"""
from dataclasses import dataclass
from datetime import timedelta

from oauth_runtime.config import BEARER_TYPE


@dataclass(frozen=True)
class ClientCredentialsGrant:
    client_id: str
    client_secret: str
    scope: str | None = None
    token_lifetime: timedelta | None = None  # None -> DEFAULT_TOKEN_LIFETIME


@dataclass(frozen=True)
class PasswordGrant:
    """Resource owner credentials must already be checked by the caller."""

    client_id: str
    client_secret: str
    username: str
    password: str
    scope: str | None = None
    token_lifetime: timedelta | None = None


@dataclass(frozen=True)
class AuthorizationCodeRequest:
    """Generate step of the authorization_code grant (RFC 6749 §4.1.2)."""

    client_id: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class AuthorizationCodeGrant:
    """Exchange step. Scope comes from the code, not from the caller."""

    client_id: str
    client_secret: str
    code: str
    redirect_uri: str
    token_lifetime: timedelta | None = None


@dataclass(frozen=True)
class ImplicitGrant:
    client_id: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None
    token_lifetime: timedelta | None = None


@dataclass(frozen=True)
class RefreshTokenGrant:
    client_id: str
    client_secret: str
    refresh_token: str
    scope: str | None = None  # None -> scope recorded with the refresh token
    token_lifetime: timedelta | None = None


@dataclass(frozen=True)
class InvalidateRequest:
    """At least one of access_token / refresh_token is required."""

    client_id: str
    client_secret: str
    access_token: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expires_in: int
    token_type: str = BEARER_TYPE
    scope: str | None = None
    refresh_token: str | None = None

    def as_dict(self) -> dict:
        body = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }
        if self.scope:
            body["scope"] = self.scope
        if self.refresh_token:
            body["refresh_token"] = self.refresh_token
        return body


@dataclass(frozen=True)
class VerifiedToken:
    """Identity of the application that owns a verified access token."""

    app_id: str | None
    client_id: str
    scope: str | None = None
