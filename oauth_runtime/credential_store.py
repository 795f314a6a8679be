"""
Persistence of access tokens, refresh tokens and authorization codes on top of a KeyValueStore.

Schema:
    oauth:token:<token>            -> {"access_token", "token_type", "expires_in", "client_id", "app_id", "scope"?}
    oauth:code:<client_id>:<code>  -> {"redirect_uri", "scope"}

Consumption of codes and refresh tokens is a single atomic read-and-delete, so two
concurrent exchanges of the same credential cannot both succeed.
Presented tokens and codes containing the key separator (or empty) never address a record.
"""
import json
import logging
from dataclasses import asdict, dataclass

from oauth_runtime.config import (
    AUTH_CODE_TTL_SECONDS,
    BEARER_TYPE,
    CODE_NAMESPACE,
    KEY_PREFIX,
    KEY_SEPARATOR,
    REFRESH_TYPE,
    TOKEN_NAMESPACE,
)
from oauth_runtime.errors import InvalidRequestError, StorageError, WrongTokenTypeError
from oauth_runtime.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def make_key(*parts: str) -> str:
    return KEY_SEPARATOR.join((KEY_PREFIX, *parts))


def token_key(token: str) -> str:
    return make_key(TOKEN_NAMESPACE, token)


def code_key(client_id: str, code: str) -> str:
    return make_key(CODE_NAMESPACE, client_id, code)


def _addressable(value: str | None) -> bool:
    return bool(value) and KEY_SEPARATOR not in value


def _decode(raw: str) -> dict:
    try:
        record = json.loads(raw)
    except ValueError as exc:
        raise StorageError("Malformed stored record") from exc
    if not isinstance(record, dict):
        raise StorageError("Malformed stored record")
    return record


@dataclass(frozen=True)
class StoredToken:
    access_token: str
    token_type: str
    expires_in: int
    client_id: str
    app_id: str | None = None
    scope: str | None = None

    def to_json(self) -> str:
        data = asdict(self)
        if self.scope is None:
            data.pop("scope")
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "StoredToken":
        record = _decode(raw)
        try:
            return cls(
                access_token=record["access_token"],
                token_type=record["token_type"],
                expires_in=int(record["expires_in"]),
                client_id=record["client_id"],
                app_id=record.get("app_id"),
                scope=record.get("scope"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError("Malformed stored token record") from exc


@dataclass(frozen=True)
class AuthCodeGrant:
    """What an authorization code was issued for."""

    redirect_uri: str
    scope: str | None = None


class CredentialStore:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def put_token(
        self,
        token: str,
        token_type: str,
        client_id: str,
        ttl: int | None,
        scope: str | None = None,
        app_id: str | None = None,
    ) -> StoredToken:
        """Persist a token. ttl of 0/None means the record does not expire (refresh tokens)."""
        record = StoredToken(
            access_token=token,
            token_type=token_type,
            expires_in=ttl or 0,
            client_id=client_id,
            app_id=app_id,
            scope=scope,
        )
        await self.kv.set(token_key(token), record.to_json(), ttl=ttl or None)
        return record

    async def put_refresh_token(
        self,
        token: str,
        client_id: str,
        scope: str | None = None,
        app_id: str | None = None,
    ) -> StoredToken:
        return await self.put_token(token, REFRESH_TYPE, client_id, None, scope=scope, app_id=app_id)

    async def put_auth_code(self, client_id: str, code: str, redirect_uri: str, scope: str | None) -> str:
        grant = AuthCodeGrant(redirect_uri=redirect_uri, scope=scope)
        await self.kv.set(code_key(client_id, code), json.dumps(asdict(grant)), ttl=AUTH_CODE_TTL_SECONDS)
        return code

    async def consume_auth_code(self, client_id: str, code: str) -> AuthCodeGrant | None:
        """Atomically read and delete a code. None if unknown, expired or already used."""
        if not _addressable(code):
            return None
        raw = await self.kv.get_and_delete(code_key(client_id, code))
        if raw is None:
            return None
        record = _decode(raw)
        if "redirect_uri" not in record:
            raise StorageError("Malformed stored authorization code")
        return AuthCodeGrant(redirect_uri=record["redirect_uri"], scope=record.get("scope"))

    async def consume_refresh_token(self, token: str, client_id: str) -> StoredToken | None:
        """
        Atomically read and delete a refresh token issued to client_id. None if unknown.
        A record of another type, or one issued to another client, is left in place
        and WrongTokenTypeError / InvalidRequestError is raised.
        """
        if not _addressable(token):
            return None
        raw = await self.kv.get_and_delete_if_fields(
            token_key(token), {"token_type": REFRESH_TYPE, "client_id": client_id}
        )
        if raw is None:
            return None
        record = StoredToken.from_json(raw)
        if record.token_type != REFRESH_TYPE:
            raise WrongTokenTypeError("Token is not a refresh token")
        if record.client_id != client_id:
            raise InvalidRequestError("Refresh token was not issued to this client")
        return record

    async def lookup_token(self, token: str) -> StoredToken | None:
        if not _addressable(token):
            return None
        raw = await self.kv.get(token_key(token))
        if raw is None:
            return None
        return StoredToken.from_json(raw)

    async def delete_token(self, token: str) -> None:
        if _addressable(token):
            await self.kv.delete(token_key(token))

    async def delete_refresh_token(self, token: str) -> None:
        if _addressable(token):
            await self.kv.delete(token_key(token))


def is_access_token(record: StoredToken | None) -> bool:
    return record is not None and record.token_type == BEARER_TYPE
