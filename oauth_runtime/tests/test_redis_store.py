"""
RedisKeyValueStore against fakeredis with Lua enabled, so GETDEL and the
conditional-consume script run for real instead of against a mocked client.
"""
import asyncio
import json

import fakeredis
import pytest

from oauth_runtime.credential_store import CredentialStore, token_key
from oauth_runtime.errors import InvalidRequestError, WrongTokenTypeError
from oauth_runtime.kv_store import RedisKeyValueStore

REFRESH_OWNED_BY_C1 = {"token_type": "refresh", "client_id": "c1"}


@pytest.fixture
def client():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store(client):
    return RedisKeyValueStore(client)


@pytest.mark.asyncio
async def test_set_with_ttl_applies_expiry(store, client):
    await store.set("oauth:code:c1:abc", "{}", ttl=300)
    assert 0 < await client.ttl("oauth:code:c1:abc") <= 300

    await store.set("oauth:token:rt", "{}")
    assert await client.ttl("oauth:token:rt") == -1


@pytest.mark.asyncio
async def test_getdel_is_single_use(store):
    await store.set("oauth:code:c1:abc", '{"redirect_uri": "x"}', ttl=300)
    assert await store.get_and_delete("oauth:code:c1:abc") == '{"redirect_uri": "x"}'
    assert await store.get_and_delete("oauth:code:c1:abc") is None


@pytest.mark.asyncio
async def test_conditional_consume_deletes_matching_record_once(store):
    await store.set("oauth:token:rt", json.dumps(REFRESH_OWNED_BY_C1))
    assert json.loads(await store.get_and_delete_if_fields("oauth:token:rt", REFRESH_OWNED_BY_C1)) == REFRESH_OWNED_BY_C1
    assert await store.get("oauth:token:rt") is None
    assert await store.get_and_delete_if_fields("oauth:token:rt", REFRESH_OWNED_BY_C1) is None


@pytest.mark.asyncio
async def test_conditional_consume_leaves_bearer_record(store):
    bearer = json.dumps({"token_type": "bearer", "client_id": "c1"})
    await store.set("oauth:token:at", bearer, ttl=60)
    assert await store.get_and_delete_if_fields("oauth:token:at", REFRESH_OWNED_BY_C1) == bearer
    assert await store.get("oauth:token:at") == bearer


@pytest.mark.asyncio
async def test_conditional_consume_leaves_record_of_other_client(store):
    raw = json.dumps({"token_type": "refresh", "client_id": "c2"})
    await store.set("oauth:token:rt", raw)
    assert await store.get_and_delete_if_fields("oauth:token:rt", REFRESH_OWNED_BY_C1) == raw
    assert await store.get("oauth:token:rt") == raw


@pytest.mark.asyncio
async def test_conditional_consume_leaves_non_json_value(store):
    await store.set("oauth:token:odd", "not json")
    assert await store.get_and_delete_if_fields("oauth:token:odd", REFRESH_OWNED_BY_C1) == "not json"
    assert await store.get("oauth:token:odd") == "not json"


@pytest.mark.asyncio
async def test_concurrent_conditional_consumes_succeed_once(store):
    await store.set("oauth:token:rt", json.dumps(REFRESH_OWNED_BY_C1))
    results = await asyncio.gather(
        *(store.get_and_delete_if_fields("oauth:token:rt", REFRESH_OWNED_BY_C1) for _ in range(5))
    )
    assert sum(r is not None for r in results) == 1


@pytest.mark.asyncio
async def test_concurrent_getdels_succeed_once(store):
    await store.set("oauth:code:c1:abc", "{}", ttl=300)
    results = await asyncio.gather(*(store.get_and_delete("oauth:code:c1:abc") for _ in range(5)))
    assert results.count("{}") == 1


# --- CredentialStore over Redis ---


@pytest.mark.asyncio
async def test_credential_store_refresh_rotation(store):
    credentials = CredentialStore(store)
    await credentials.put_refresh_token("rt", "c1", scope="read")

    with pytest.raises(InvalidRequestError):
        await credentials.consume_refresh_token("rt", "c2")
    assert await store.get(token_key("rt")) is not None

    record = await credentials.consume_refresh_token("rt", "c1")
    assert record.client_id == "c1"
    assert record.scope == "read"
    assert await credentials.consume_refresh_token("rt", "c1") is None


@pytest.mark.asyncio
async def test_credential_store_access_token_not_consumed_as_refresh(store, client):
    credentials = CredentialStore(store)
    await credentials.put_token("at", "bearer", "c1", 60)

    with pytest.raises(WrongTokenTypeError):
        await credentials.consume_refresh_token("at", "c1")
    assert (await credentials.lookup_token("at")).token_type == "bearer"
    assert 0 < await client.ttl(token_key("at")) <= 60


@pytest.mark.asyncio
async def test_credential_store_auth_code_single_use(store):
    credentials = CredentialStore(store)
    await credentials.put_auth_code("c1", "code-1", "https://cb.example/", "read")
    grant = await credentials.consume_auth_code("c1", "code-1")
    assert grant.redirect_uri == "https://cb.example/"
    assert await credentials.consume_auth_code("c1", "code-1") is None
