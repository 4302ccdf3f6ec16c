"""Abstract interfaces for the key-value store and its session service."""

from __future__ import annotations

import abc
from typing import List, Optional, Sequence, Union

from .models import KVEntry, SessionBehavior


Value = Union[bytes, str]


def encode_value(value: Value) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class KVStore(abc.ABC):
    """Linearizable key-value store with per-key modify indices."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[KVEntry]:  # pragma: no cover - interface
        """Return the entry at ``key`` or None when absent."""
        raise NotImplementedError

    @abc.abstractmethod
    async def put(
        self,
        key: str,
        value: Value,
        *,
        acquire_session: Optional[str] = None,
        release_session: Optional[str] = None,
        cas: Optional[int] = None,
    ) -> bool:  # pragma: no cover - interface
        """Conditionally write ``key``.

        ``cas=0`` only writes when the key is absent, any other index only
        writes when it equals the key's current modify index. ``acquire_session``
        binds the key to a session unless another session holds it;
        ``release_session`` clears the binding only for its current holder.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def list_prefix(self, prefix: str) -> List[KVEntry]:  # pragma: no cover - interface
        """Return every entry whose key starts with ``prefix``, ordered by key."""
        raise NotImplementedError


class SessionService(abc.ABC):
    """Issues liveness-bound sessions that keys can be tied to."""

    @abc.abstractmethod
    async def create_session(
        self,
        name: str,
        *,
        checks: Optional[Sequence[str]] = None,
        behavior: SessionBehavior = SessionBehavior.DELETE,
    ) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def destroy_session(self, session_id: str) -> bool:  # pragma: no cover - interface
        """Invalidate a session; unknown ids are not an error."""
        raise NotImplementedError


class CheckRegistry(abc.ABC):
    """TTL health checks that sessions can be linked to."""

    @abc.abstractmethod
    async def register_check(self, check_id: str, name: str, ttl: float) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def pass_check(self, check_id: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abc.abstractmethod
    async def deregister_check(self, check_id: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class CoordinationStore(KVStore, SessionService, CheckRegistry):
    """Everything the lock and semaphore need from a backend."""

    async def close(self) -> None:
        """Release transport resources."""
