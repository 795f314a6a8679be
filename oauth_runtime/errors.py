"""
Error taxonomy for grant and storage failures, mapped to RFC 6749 §5.2 error identifiers.
"""
from fastapi import HTTPException


class OAuthError(Exception):
    """Base error. `error` is the OAuth2 identifier returned to clients."""

    error = "server_error"
    status_code = 400
    retryable = False

    def __init__(self, description: str | None = None):
        super().__init__(description or self.error)
        self.description = description

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidClientError(OAuthError):
    error = "invalid_client"
    status_code = 401


class InvalidRequestError(OAuthError):
    error = "invalid_request"


class InvalidGrantError(OAuthError):
    """Resource owner credentials rejected."""

    error = "invalid_grant"


class WrongTokenTypeError(InvalidRequestError):
    """Stored record exists but is not a refresh token."""


class InvalidScopeError(OAuthError):
    error = "invalid_scope"


class StorageError(OAuthError):
    """Backend unavailable, timed out, or returned a malformed record. Safe to retry with backoff."""

    error = "temporarily_unavailable"
    status_code = 503
    retryable = True

    def __init__(self, description: str | None = None, *, timeout: bool = False):
        super().__init__(description)
        self.timeout = timeout


def to_http_exception(exc: OAuthError) -> HTTPException:
    headers = {"WWW-Authenticate": "Basic"} if isinstance(exc, InvalidClientError) else None
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict(), headers=headers)
