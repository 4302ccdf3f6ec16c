"""In-process store with Consul KV/session semantics."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from .errors import StoreError
from .models import KVEntry, SessionBehavior
from .store import CoordinationStore, Value, encode_value


@dataclass(slots=True)
class _Record:
    value: bytes
    modify_index: int
    session: Optional[str] = None


@dataclass(slots=True)
class _Session:
    name: str
    behavior: SessionBehavior
    checks: Set[str] = field(default_factory=set)


class InMemoryStore(CoordinationStore):
    """Single-process reference store.

    Every operation yields to the event loop once and then runs without
    further suspension, so concurrent coroutines interleave between round
    trips while each operation stays atomic.
    """

    def __init__(self) -> None:
        self._records: Dict[str, _Record] = {}
        self._sessions: Dict[str, _Session] = {}
        self._checks: Set[str] = set()
        self._index = 0

    def _next_index(self) -> int:
        self._index += 1
        return self._index

    def _entry(self, key: str, record: _Record) -> KVEntry:
        return KVEntry(key=key, value=record.value, modify_index=record.modify_index, session=record.session)

    async def get(self, key: str) -> Optional[KVEntry]:
        await asyncio.sleep(0)
        record = self._records.get(key)
        return self._entry(key, record) if record else None

    async def put(
        self,
        key: str,
        value: Value,
        *,
        acquire_session: Optional[str] = None,
        release_session: Optional[str] = None,
        cas: Optional[int] = None,
    ) -> bool:
        await asyncio.sleep(0)
        record = self._records.get(key)
        if cas is not None:
            if cas == 0 and record is not None:
                return False
            if cas != 0 and (record is None or record.modify_index != cas):
                return False

        holder = record.session if record else None
        if acquire_session is not None:
            if acquire_session not in self._sessions:
                raise StoreError(f"invalid session {acquire_session!r}")
            if holder is not None and holder != acquire_session:
                return False
            holder = acquire_session
        elif release_session is not None:
            if holder != release_session:
                return False
            holder = None

        self._records[key] = _Record(value=encode_value(value), modify_index=self._next_index(), session=holder)
        return True

    async def delete(self, key: str) -> bool:
        await asyncio.sleep(0)
        self._records.pop(key, None)
        return True

    async def list_prefix(self, prefix: str) -> List[KVEntry]:
        await asyncio.sleep(0)
        return [
            self._entry(key, record)
            for key, record in sorted(self._records.items())
            if key.startswith(prefix)
        ]

    async def create_session(
        self,
        name: str,
        *,
        checks: Optional[Sequence[str]] = None,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:
        await asyncio.sleep(0)
        missing = [check for check in checks or () if check not in self._checks]
        if missing:
            raise StoreError(f"cannot link session to unknown checks: {missing}")
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = _Session(name=name, behavior=SessionBehavior(behavior), checks=set(checks or ()))
        return session_id

    async def destroy_session(self, session_id: str) -> bool:
        await asyncio.sleep(0)
        self._invalidate(session_id)
        return True

    async def register_check(self, check_id: str, name: str, ttl: float) -> None:
        await asyncio.sleep(0)
        self._checks.add(check_id)

    async def pass_check(self, check_id: str) -> None:
        await asyncio.sleep(0)
        if check_id not in self._checks:
            raise StoreError(f"unknown check {check_id!r}")

    async def deregister_check(self, check_id: str) -> None:
        await asyncio.sleep(0)
        self.fail_check(check_id)

    # Test helpers: simulate liveness loss without going through an owner.

    def expire_session(self, session_id: str) -> None:
        self._invalidate(session_id)

    def fail_check(self, check_id: str) -> None:
        self._checks.discard(check_id)
        for session_id in [sid for sid, s in self._sessions.items() if check_id in s.checks]:
            self._invalidate(session_id)

    def session_alive(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _invalidate(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        for key in [k for k, r in self._records.items() if r.session == session_id]:
            if session.behavior is SessionBehavior.DELETE:
                del self._records[key]
            else:
                record = self._records[key]
                self._records[key] = _Record(value=record.value, modify_index=self._next_index())
