from __future__ import annotations

import base64
import json

import httpx
import pytest

from kvsync.core.errors import StoreError
from kvsync.core.models import SessionBehavior
from kvsync.core.store_consul import ConsulStore


class FakeConsul:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404)
        return handler(request)


def _store(fake: FakeConsul, **kwargs) -> ConsulStore:
    return ConsulStore("http://consul.test:8500", transport=httpx.MockTransport(fake), **kwargs)


def _kv(key, value, index, session=None):
    item = {"Key": key, "Value": base64.b64encode(value).decode() if value else None, "ModifyIndex": index}
    if session:
        item["Session"] = session
    return item


@pytest.mark.asyncio
async def test_get_decodes_value_index_and_session():
    fake = FakeConsul(
        {("GET", "/v1/kv/lock/jobs"): lambda r: httpx.Response(200, json=[_kv("lock/jobs", b"lock:now", 42, "sess-1")])}
    )
    store = _store(fake)
    entry = await store.get("lock/jobs")
    assert entry.value == b"lock:now"
    assert entry.modify_index == 42
    assert entry.session == "sess-1"
    await store.close()


@pytest.mark.asyncio
async def test_get_missing_key_returns_none():
    store = _store(FakeConsul({}))
    assert await store.get("semaphore/jobs/.lock") is None
    await store.close()


@pytest.mark.asyncio
async def test_put_sends_conditions_as_query_parameters():
    fake = FakeConsul({("PUT", "/v1/kv/semaphore/jobs/.lock"): lambda r: httpx.Response(200, json=False)})
    store = _store(fake, token="secret", datacenter="dc2")

    assert await store.put("semaphore/jobs/.lock", b'{"Limit":1}', cas=7) is False

    request = fake.requests[0]
    assert request.url.params["cas"] == "7"
    assert request.url.params["dc"] == "dc2"
    assert "acquire" not in request.url.params
    assert request.headers["X-Consul-Token"] == "secret"
    assert request.content == b'{"Limit":1}'
    await store.close()


@pytest.mark.asyncio
async def test_put_acquire_and_release():
    fake = FakeConsul({("PUT", "/v1/kv/lock/jobs"): lambda r: httpx.Response(200, json=True)})
    store = _store(fake)
    assert await store.put("lock/jobs", "lock:now", acquire_session="s1") is True
    assert await store.put("lock/jobs", "unlock:now", release_session="s1") is True
    assert fake.requests[0].url.params["acquire"] == "s1"
    assert fake.requests[1].url.params["release"] == "s1"
    await store.close()


@pytest.mark.asyncio
async def test_list_prefix_uses_recurse_and_sorts():
    items = [_kv("semaphore/jobs/b", b"", 5, "b"), _kv("semaphore/jobs/.lock", b"{}", 3)]
    fake = FakeConsul({("GET", "/v1/kv/semaphore/jobs/"): lambda r: httpx.Response(200, json=items)})
    store = _store(fake)

    entries = await store.list_prefix("semaphore/jobs/")

    assert [e.key for e in entries] == ["semaphore/jobs/.lock", "semaphore/jobs/b"]
    assert entries[1].session == "b"
    assert entries[1].value == b""
    assert fake.requests[0].url.params["recurse"] == "true"
    await store.close()


@pytest.mark.asyncio
async def test_create_session_body():
    fake = FakeConsul({("PUT", "/v1/session/create"): lambda r: httpx.Response(200, json={"ID": "abc"})})
    store = _store(fake)

    session_id = await store.create_session("worker", checks=["kvsync:check"], behavior=SessionBehavior.DELETE)

    assert session_id == "abc"
    body = json.loads(fake.requests[0].content)
    assert body == {
        "Name": "worker",
        "Behavior": "delete",
        "Checks": ["kvsync:check"],
    }
    await store.close()


@pytest.mark.asyncio
async def test_check_endpoints():
    ok = lambda r: httpx.Response(200)
    fake = FakeConsul(
        {
            ("PUT", "/v1/agent/check/register"): ok,
            ("PUT", "/v1/agent/check/pass/c1"): ok,
            ("PUT", "/v1/agent/check/deregister/c1"): ok,
            ("PUT", "/v1/session/destroy/abc"): lambda r: httpx.Response(200, json=True),
        }
    )
    store = _store(fake)
    await store.register_check("c1", "kvsync check", ttl=10)
    await store.pass_check("c1")
    await store.deregister_check("c1")
    assert await store.destroy_session("abc") is True

    assert json.loads(fake.requests[0].content) == {
        "ID": "c1",
        "Name": "kvsync check",
        "TTL": "10s",
        "Status": "passing",
    }
    await store.close()


@pytest.mark.asyncio
async def test_error_status_raises_store_error():
    fake = FakeConsul({("PUT", "/v1/kv/lock/jobs"): lambda r: httpx.Response(500, text="invalid session")})
    store = _store(fake)
    with pytest.raises(StoreError, match="invalid session"):
        await store.put("lock/jobs", "x", acquire_session="gone")
    await store.close()


@pytest.mark.asyncio
async def test_transport_error_raises_store_error():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = ConsulStore("consul.test:8500", transport=httpx.MockTransport(boom))
    with pytest.raises(StoreError):
        await store.get("lock/jobs")
    await store.close()
