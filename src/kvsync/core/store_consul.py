"""Consul-backed store using the HTTP API."""

from __future__ import annotations

import base64
import os
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from .errors import StoreError
from .models import KVEntry, SessionBehavior
from .store import CoordinationStore, Value, encode_value


def _duration(seconds: float) -> str:
    """Render seconds the way Consul parses durations."""
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{int(round(seconds * 1000))}ms"


class ConsulStore(CoordinationStore):
    """KV, session and agent-check endpoints of a Consul agent."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        datacenter: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base_url = (url or os.getenv("CONSUL_HTTP_ADDR", "http://127.0.0.1:8500")).rstrip("/")
        if "://" not in base_url:
            base_url = f"http://{base_url}"
        headers = {}
        token = token or os.getenv("CONSUL_HTTP_TOKEN")
        if token:
            headers["X-Consul-Token"] = token
        self._datacenter = datacenter
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        json: Any = None,
        allow_missing: bool = False,
    ) -> Optional[httpx.Response]:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        if self._datacenter and path.startswith(("/v1/kv", "/v1/session")):
            query.setdefault("dc", self._datacenter)
        try:
            response = await self._client.request(method, path, params=query, content=content, json=json)
        except httpx.HTTPError as exc:
            raise StoreError(f"Consul request {method} {path} failed: {exc}") from exc
        if allow_missing and response.status_code == 404:
            return None
        if response.is_error:
            raise StoreError(
                f"Consul request {method} {path} returned {response.status_code}: {response.text.strip()}"
            )
        return response

    @staticmethod
    def _kv_path(key: str) -> str:
        return "/v1/kv/" + quote(key.lstrip("/"), safe="/")

    @staticmethod
    def _to_entry(item: Dict[str, Any]) -> KVEntry:
        raw = item.get("Value")
        return KVEntry(
            key=item["Key"],
            value=base64.b64decode(raw) if raw else b"",
            modify_index=int(item["ModifyIndex"]),
            session=item.get("Session") or None,
        )

    async def get(self, key: str) -> Optional[KVEntry]:
        response = await self._request("GET", self._kv_path(key), allow_missing=True)
        if response is None:
            return None
        items = response.json() or []
        return self._to_entry(items[0]) if items else None

    async def put(
        self,
        key: str,
        value: Value,
        *,
        acquire_session: Optional[str] = None,
        release_session: Optional[str] = None,
        cas: Optional[int] = None,
    ) -> bool:
        params = {"acquire": acquire_session, "release": release_session, "cas": cas}
        response = await self._request("PUT", self._kv_path(key), params=params, content=encode_value(value))
        return response.json() is True

    async def delete(self, key: str) -> bool:
        response = await self._request("DELETE", self._kv_path(key))
        return response.json() is True

    async def list_prefix(self, prefix: str) -> List[KVEntry]:
        response = await self._request("GET", self._kv_path(prefix), params={"recurse": "true"}, allow_missing=True)
        if response is None:
            return []
        return sorted((self._to_entry(item) for item in response.json() or []), key=lambda e: e.key)

    async def create_session(
        self,
        name: str,
        *,
        checks: Optional[Sequence[str]] = None,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        body: Dict[str, Any] = {"Name": name, "Behavior": SessionBehavior(behavior).value}
        if checks:
            body["Checks"] = list(checks)
        response = await self._request("PUT", "/v1/session/create", json=body)
        return response.json()["ID"]

    async def destroy_session(self, session_id: str) -> bool:
        response = await self._request("PUT", f"/v1/session/destroy/{session_id}")
        return response.json() is True

    async def register_check(self, check_id: str, name: str, ttl: float) -> None:
        body = {"ID": check_id, "Name": name, "TTL": _duration(ttl), "Status": "passing"}
        await self._request("PUT", "/v1/agent/check/register", json=body)

    async def pass_check(self, check_id: str) -> None:
        await self._request("PUT", f"/v1/agent/check/pass/{check_id}")

    async def deregister_check(self, check_id: str) -> None:
        await self._request("PUT", f"/v1/agent/check/deregister/{check_id}")

    async def close(self) -> None:
        await self._client.aclose()
