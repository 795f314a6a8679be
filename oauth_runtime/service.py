"""
Grant flows (RFC 6749): client_credentials, password, authorization_code (generate + exchange),
implicit, refresh_token, plus invalidation and verification of issued tokens.

Each flow runs authenticate -> scope/redirect check -> mint -> persist -> optional refresh mint,
and the first failing stage raises its OAuthError to the caller. No state is kept between requests.
"""
import logging
from datetime import timedelta
from typing import Awaitable, Callable
from urllib.parse import urlencode

from oauth_runtime.audit import (
    AuditTrail,
    EVENT_CLIENT_AUTH_FAIL,
    EVENT_CODE_ISSUED,
    EVENT_TOKEN_ISSUED,
    EVENT_TOKEN_REFRESHED,
    EVENT_TOKEN_REVOKED,
    OUTCOME_FAIL,
)
from oauth_runtime.config import BEARER_TYPE, DEFAULT_TOKEN_LIFETIME, REFRESH_TYPE
from oauth_runtime.credential_store import CredentialStore, is_access_token
from oauth_runtime.errors import InvalidClientError, InvalidGrantError, InvalidRequestError, WrongTokenTypeError
from oauth_runtime.grants import (
    AuthorizationCodeGrant,
    AuthorizationCodeRequest,
    ClientCredentialsGrant,
    ImplicitGrant,
    InvalidateRequest,
    PasswordGrant,
    RefreshTokenGrant,
    TokenResponse,
    VerifiedToken,
)
from oauth_runtime.registry import ApplicationRecord, ApplicationRegistry
from oauth_runtime.scope import narrow_scope, resolve_scope
from oauth_runtime.tokens import generate_token


def _with_params(uri: str, params: dict, fragment: bool = False) -> str:
    if fragment:
        return f"{uri}#{urlencode(params)}"
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{urlencode(params)}"


class TokenService:
    def __init__(
        self,
        registry: ApplicationRegistry,
        credentials: CredentialStore,
        *,
        logger: logging.Logger | None = None,
        audit: AuditTrail | None = None,
        default_token_lifetime: int = DEFAULT_TOKEN_LIFETIME,
        token_generator: Callable[[], str] = generate_token,
    ):
        self.registry = registry
        self.credentials = credentials
        self.logger = logger or logging.getLogger(__name__)
        self.audit = audit
        self.default_token_lifetime = default_token_lifetime
        self._generate = token_generator

    # --- stages ---

    async def _record(self, event_type: str, client_id: str | None, **kwargs) -> None:
        # Audit is best-effort: by now credentials may already be persisted or consumed
        if self.audit is None:
            return
        try:
            await self.audit.record(event_type, client_id=client_id, **kwargs)
        except Exception:
            self.logger.exception("Audit write failed for event %s (client_id=%s)", event_type, client_id)

    async def _authenticate(self, client_id: str, client_secret: str | None) -> ApplicationRecord:
        app = await self.registry.get_app_for_credentials(client_id, client_secret)
        if app is None:
            self.logger.info("Client authentication failed for client_id=%s", client_id)
            await self._record(EVENT_CLIENT_AUTH_FAIL, client_id, outcome=OUTCOME_FAIL)
            raise InvalidClientError("Invalid client credentials")
        return app

    async def _check_redirect_uri(self, client_id: str, redirect_uri: str) -> ApplicationRecord:
        if not await self.registry.check_redirect_uri(client_id, redirect_uri):
            raise InvalidRequestError("redirect_uri not registered for client")
        app = await self.registry.get_app_for_client_id(client_id)
        if app is None:
            raise InvalidClientError("Unknown client")
        return app

    def _ttl(self, token_lifetime: timedelta | None) -> int:
        if token_lifetime is None:
            return self.default_token_lifetime
        seconds = int(token_lifetime.total_seconds())
        if seconds < 1:
            raise InvalidRequestError("token_lifetime must be at least one second")
        return seconds

    async def _issue(
        self,
        app: ApplicationRecord,
        client_id: str,
        scope: str | None,
        ttl: int,
        refresh: bool,
    ) -> TokenResponse:
        token = self._generate()
        record = await self.credentials.put_token(token, BEARER_TYPE, client_id, ttl, scope=scope, app_id=app.app_id)
        refresh_token = None
        if refresh:
            refresh_token = self._generate()
            await self.credentials.put_refresh_token(refresh_token, client_id, scope=scope, app_id=app.app_id)
        return TokenResponse(
            access_token=record.access_token,
            expires_in=record.expires_in,
            scope=record.scope,
            refresh_token=refresh_token,
        )

    # --- grants ---

    async def create_token_client_credentials(self, grant: ClientCredentialsGrant) -> TokenResponse:
        app = await self._authenticate(grant.client_id, grant.client_secret)
        scope = resolve_scope(grant.scope, app)
        response = await self._issue(app, grant.client_id, scope, self._ttl(grant.token_lifetime), refresh=False)
        self.logger.info("client_credentials grant: token issued for client_id=%s", grant.client_id)
        await self._record(EVENT_TOKEN_ISSUED, grant.client_id)
        return response

    async def create_token_password(
        self,
        grant: PasswordGrant,
        verify_owner: Callable[[str, str], Awaitable[bool]] | None = None,
    ) -> TokenResponse:
        """
        Resource owner password grant. `verify_owner(username, password)` checks the user
        and is only called once the client has authenticated.
        """
        app = await self._authenticate(grant.client_id, grant.client_secret)
        if verify_owner is not None and not await verify_owner(grant.username, grant.password):
            self.logger.info("password grant: bad resource owner credentials for client_id=%s", grant.client_id)
            raise InvalidGrantError("Invalid username or password")
        scope = resolve_scope(grant.scope, app)
        response = await self._issue(app, grant.client_id, scope, self._ttl(grant.token_lifetime), refresh=True)
        self.logger.info("password grant: tokens issued for client_id=%s", grant.client_id)
        await self._record(EVENT_TOKEN_ISSUED, grant.client_id)
        return response

    async def generate_authorization_code(self, request: AuthorizationCodeRequest) -> str:
        """Return redirect_uri with code (and state/scope) in the query string."""
        app = await self._check_redirect_uri(request.client_id, request.redirect_uri)
        scope = resolve_scope(request.scope, app)
        code = await self.credentials.put_auth_code(request.client_id, self._generate(), request.redirect_uri, scope)
        params = {"code": code}
        if request.state:
            params["state"] = request.state
        if request.scope:
            params["scope"] = request.scope
        self.logger.info("authorization code issued for client_id=%s", request.client_id)
        await self._record(EVENT_CODE_ISSUED, request.client_id)
        return _with_params(request.redirect_uri, params)

    async def create_token_authorization_code(self, grant: AuthorizationCodeGrant) -> TokenResponse:
        app = await self._authenticate(grant.client_id, grant.client_secret)
        ttl = self._ttl(grant.token_lifetime)
        # The code is gone after this call whether or not the rest of the exchange succeeds
        stored = await self.credentials.consume_auth_code(grant.client_id, grant.code)
        if stored is None:
            raise InvalidRequestError("Invalid, expired or already used authorization code")
        if stored.redirect_uri != grant.redirect_uri:
            self.logger.warning("redirect_uri mismatch on code exchange for client_id=%s", grant.client_id)
            raise InvalidRequestError("redirect_uri mismatch")
        response = await self._issue(app, grant.client_id, stored.scope, ttl, refresh=True)
        self.logger.info("authorization_code grant: tokens issued for client_id=%s", grant.client_id)
        await self._record(EVENT_TOKEN_ISSUED, grant.client_id)
        return response

    async def create_token_implicit(self, grant: ImplicitGrant) -> str:
        """Return redirect_uri with the access token in the fragment. Never issues a refresh token."""
        app = await self._check_redirect_uri(grant.client_id, grant.redirect_uri)
        scope = resolve_scope(grant.scope, app)
        response = await self._issue(app, grant.client_id, scope, self._ttl(grant.token_lifetime), refresh=False)
        params = {
            "access_token": response.access_token,
            "token_type": BEARER_TYPE,
            "expires_in": response.expires_in,
        }
        if grant.scope:
            params["scope"] = grant.scope
        if grant.state:
            params["state"] = grant.state
        self.logger.info("implicit grant: token issued for client_id=%s", grant.client_id)
        await self._record(EVENT_TOKEN_ISSUED, grant.client_id)
        return _with_params(grant.redirect_uri, params, fragment=True)

    async def refresh_token(self, grant: RefreshTokenGrant) -> TokenResponse:
        """
        Rotate a refresh token. The old one is deleted atomically before the new pair
        is minted, so old and new are never valid at the same time. Every check runs
        before the consume; a rejected request leaves the refresh token usable.
        """
        app = await self._authenticate(grant.client_id, grant.client_secret)
        ttl = self._ttl(grant.token_lifetime)
        current = await self.credentials.lookup_token(grant.refresh_token)
        if current is None:
            raise InvalidRequestError("Invalid or already used refresh token")
        if current.token_type != REFRESH_TYPE:
            raise WrongTokenTypeError("Token is not a refresh token")
        if current.client_id != grant.client_id:
            self.logger.warning(
                "refresh token presented by client_id=%s belongs to another client", grant.client_id
            )
            raise InvalidRequestError("Refresh token was not issued to this client")
        scope = narrow_scope(grant.scope, current.scope, app)
        stored = await self.credentials.consume_refresh_token(grant.refresh_token, grant.client_id)
        if stored is None:
            # consumed by a concurrent request since the lookup
            raise InvalidRequestError("Invalid or already used refresh token")
        response = await self._issue(app, grant.client_id, scope, ttl, refresh=True)
        self.logger.info("refresh_token grant: tokens rotated for client_id=%s", grant.client_id)
        await self._record(EVENT_TOKEN_REFRESHED, grant.client_id)
        return response

    async def invalidate_token(self, request: InvalidateRequest) -> None:
        """Delete the given tokens, only after the client has authenticated."""
        if not request.access_token and not request.refresh_token:
            raise InvalidRequestError("access_token or refresh_token is required")
        app_id = await self.registry.get_app_id_for_credentials(request.client_id, request.client_secret)
        if app_id is None:
            self.logger.info("Invalidate rejected for client_id=%s", request.client_id)
            await self._record(EVENT_CLIENT_AUTH_FAIL, request.client_id, outcome=OUTCOME_FAIL)
            raise InvalidClientError("Invalid client credentials")
        if request.access_token:
            await self.credentials.delete_token(request.access_token)
        if request.refresh_token:
            await self.credentials.delete_refresh_token(request.refresh_token)
        self.logger.info("tokens invalidated for client_id=%s", request.client_id)
        await self._record(EVENT_TOKEN_REVOKED, request.client_id)

    async def verify_token(self, token: str, verb: str | None = None, path: str | None = None) -> VerifiedToken:
        """
        Read-only lookup of an access token. verb and path are accepted for future
        authorization decisions and not interpreted.
        """
        record = await self.credentials.lookup_token(token)
        if not is_access_token(record):
            raise InvalidRequestError("Invalid or expired access token")
        self.logger.debug("verified token for client_id=%s (%s %s)", record.client_id, verb, path)
        return VerifiedToken(app_id=record.app_id, client_id=record.client_id, scope=record.scope)
