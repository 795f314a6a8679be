"""
Token runtime configuration.
No secrets in this file; credentials come from env or the registry DB.
"""
import os

# Key-value store holding tokens and authorization codes. "memory://" selects the in-process store.
KV_STORE_URL = os.environ.get("OAUTH_REDIS_URL", "redis://127.0.0.1:6379/0")

# Socket timeout for store calls (seconds). A timeout surfaces as a storage error, never as "not found".
KV_STORE_TIMEOUT_SECONDS = float(os.environ.get("OAUTH_REDIS_TIMEOUT_SECONDS", "2.0"))

# Application registry DB (client credentials, redirect URIs, scopes)
DATABASE_URL = os.environ.get("OAUTH_REGISTRY_DATABASE_URL", "sqlite:///./oauth_runtime.db")

# Access token lifetime when the caller does not supply one (seconds). Default 1 day.
DEFAULT_TOKEN_LIFETIME = int(os.environ.get("OAUTH_DEFAULT_TOKEN_LIFETIME", str(60 * 60 * 24)))

# Authorization code lifetime (seconds). Fixed: 5 minutes.
AUTH_CODE_TTL_SECONDS = 60 * 5

# Key layout: oauth:token:<token> and oauth:code:<client_id>:<code>. Not configurable.
KEY_PREFIX = "oauth"
KEY_SEPARATOR = ":"
TOKEN_NAMESPACE = "token"
CODE_NAMESPACE = "code"

# 256 bits of randomness per token/code
TOKEN_BYTES = 32

BEARER_TYPE = "bearer"
REFRESH_TYPE = "refresh"
