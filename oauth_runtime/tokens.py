"""
Opaque token and authorization code generation.
"""
import secrets

from oauth_runtime.config import TOKEN_BYTES


def generate_token() -> str:
    """URL-safe random token with TOKEN_BYTES (256 bits) of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)
