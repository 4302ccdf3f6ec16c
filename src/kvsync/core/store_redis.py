"""Redis-backed store emulating Consul KV/session semantics with Lua scripts.

Layout under the configured namespace:

- ``kv:<key>``: hash with ``value``, ``modify_index``, ``session``, ``behavior``
- ``keys``: sorted set of every key (score 0), used for prefix listing
- ``index``: global modify-index counter
- ``session:<id>``: hash with ``name``, ``behavior``, ``checks``
- ``check:<id>``: TTL check, alive while the key exists

A session is alive while its hash exists and all of its checks exist. Keys
bound to a dead session are released or deleted by whichever script touches
them next, before that script reads them.
"""

from __future__ import annotations

import os
import uuid
from typing import List, Optional, Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import StoreError
from .models import KVEntry, SessionBehavior
from .store import CoordinationStore, Value, encode_value


_PRELUDE = r"""
local ns = ARGV[1]

local function session_alive(sid)
  local skey = ns .. 'session:' .. sid
  if redis.call('EXISTS', skey) == 0 then
    return false
  end
  local checks = redis.call('HGET', skey, 'checks') or ''
  for check in string.gmatch(checks, '[^,]+') do
    if redis.call('EXISTS', ns .. 'check:' .. check) == 0 then
      redis.call('DEL', skey)
      return false
    end
  end
  return true
end

local function reconcile(key)
  local hkey = ns .. 'kv:' .. key
  local sid = redis.call('HGET', hkey, 'session')
  if not sid or sid == '' or session_alive(sid) then
    return
  end
  if redis.call('HGET', hkey, 'behavior') == 'delete' then
    redis.call('DEL', hkey)
    redis.call('ZREM', ns .. 'keys', key)
  else
    local index = redis.call('INCR', ns .. 'index')
    redis.call('HSET', hkey, 'session', '', 'modify_index', index)
  end
end
"""

_GET = _PRELUDE + r"""
local key = ARGV[2]
reconcile(key)
local hkey = ns .. 'kv:' .. key
if redis.call('EXISTS', hkey) == 0 then
  return false
end
return redis.call('HMGET', hkey, 'value', 'modify_index', 'session')
"""

_PUT = _PRELUDE + r"""
local key, value, acquire, release, cas = ARGV[2], ARGV[3], ARGV[4], ARGV[5], ARGV[6]
reconcile(key)
local hkey = ns .. 'kv:' .. key
local exists = redis.call('EXISTS', hkey) == 1
if cas ~= '' then
  local expected = tonumber(cas)
  if expected == 0 then
    if exists then
      return 0
    end
  elseif not exists or tonumber(redis.call('HGET', hkey, 'modify_index')) ~= expected then
    return 0
  end
end
local holder = redis.call('HGET', hkey, 'session') or ''
local behavior = redis.call('HGET', hkey, 'behavior') or ''
if acquire ~= '' then
  if not session_alive(acquire) then
    return redis.error_reply('invalid session ' .. acquire)
  end
  if holder ~= '' and holder ~= acquire then
    return 0
  end
  holder = acquire
  behavior = redis.call('HGET', ns .. 'session:' .. acquire, 'behavior')
elseif release ~= '' then
  if holder ~= release then
    return 0
  end
  holder = ''
end
local index = redis.call('INCR', ns .. 'index')
redis.call('HSET', hkey, 'value', value, 'modify_index', index, 'session', holder, 'behavior', behavior)
redis.call('ZADD', ns .. 'keys', 0, key)
return 1
"""

_LIST = _PRELUDE + r"""
local prefix = ARGV[2]
local keys = redis.call('ZRANGEBYLEX', ns .. 'keys', '[' .. prefix, '[' .. prefix .. '\255')
local result = {}
for _, key in ipairs(keys) do
  reconcile(key)
  local hkey = ns .. 'kv:' .. key
  if redis.call('EXISTS', hkey) == 1 then
    local fields = redis.call('HMGET', hkey, 'value', 'modify_index', 'session')
    table.insert(result, {key, fields[1], fields[2], fields[3]})
  end
end
return result
"""


def _text(raw) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)


class RedisStore(CoordinationStore):
    def __init__(self, url: Optional[str] = None, *, namespace: str = "kvsync:", client: Optional[Redis] = None) -> None:
        self._redis = client or Redis.from_url(url or os.getenv("REDIS_URL", "redis://localhost:6379/0"))
        self._ns = namespace
        self._get = self._redis.register_script(_GET)
        self._put = self._redis.register_script(_PUT)
        self._list = self._redis.register_script(_LIST)

    def _entry(self, key: str, value, modify_index, session) -> KVEntry:
        session_id = _text(session) if session else ""
        return KVEntry(
            key=key,
            value=bytes(value or b""),
            modify_index=int(modify_index),
            session=session_id or None,
        )

    async def _call(self, script, *args):
        try:
            return await script(keys=[], args=[self._ns, *args])
        except RedisError as exc:
            raise StoreError(f"Redis script failed: {exc}") from exc

    async def get(self, key: str) -> Optional[KVEntry]:
        result = await self._call(self._get, key)
        if not result:
            return None
        return self._entry(key, *result)

    async def put(
        self,
        key: str,
        value: Value,
        *,
        acquire_session: Optional[str] = None,
        release_session: Optional[str] = None,
        cas: Optional[int] = None,
    ) -> bool:
        result = await self._call(
            self._put,
            key,
            encode_value(value),
            acquire_session or "",
            release_session or "",
            "" if cas is None else str(cas),
        )
        return int(result) == 1

    async def delete(self, key: str) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(f"{self._ns}kv:{key}")
                pipe.zrem(f"{self._ns}keys", key)
                await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Redis delete of {key!r} failed: {exc}") from exc
        return True

    async def list_prefix(self, prefix: str) -> List[KVEntry]:
        rows = await self._call(self._list, prefix)
        return [self._entry(_text(key), value, index, session) for key, value, index, session in rows or []]

    async def create_session(
        self,
        name: str,
        *,
        checks: Optional[Sequence[str]] = None,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        session_id = str(uuid.uuid4())
        skey = f"{self._ns}session:{session_id}"
        try:
            for check in checks or ():
                if not await self._redis.exists(f"{self._ns}check:{check}"):
                    raise StoreError(f"cannot link session to unknown check {check!r}")
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    skey,
                    mapping={
                        "name": name,
                        "behavior": SessionBehavior(behavior).value,
                        "checks": ",".join(checks or ()),
                    },
                )
                await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Redis session create failed: {exc}") from exc
        return session_id

    async def destroy_session(self, session_id: str) -> bool:
        try:
            await self._redis.delete(f"{self._ns}session:{session_id}")
        except RedisError as exc:
            raise StoreError(f"Redis session destroy failed: {exc}") from exc
        return True

    async def register_check(self, check_id: str, name: str, ttl: float) -> None:
        ttl_ms = int(ttl * 1000)
        try:
            await self._redis.set(f"{self._ns}check:{check_id}", ttl_ms, px=ttl_ms)
        except RedisError as exc:
            raise StoreError(f"Redis check register failed: {exc}") from exc

    async def pass_check(self, check_id: str) -> None:
        ckey = f"{self._ns}check:{check_id}"
        try:
            raw = await self._redis.get(ckey)
            # xx: a lapsed check stays dead, its sessions are already invalid
            if raw is None or not await self._redis.set(ckey, raw, px=int(raw), xx=True):
                raise StoreError(f"check {check_id!r} has lapsed")
        except RedisError as exc:
            raise StoreError(f"Redis check pass failed: {exc}") from exc

    async def deregister_check(self, check_id: str) -> None:
        try:
            await self._redis.delete(f"{self._ns}check:{check_id}")
        except RedisError as exc:
            raise StoreError(f"Redis check deregister failed: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()
