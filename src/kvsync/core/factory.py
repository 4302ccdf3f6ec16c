"""Build stores and checks from settings."""

from __future__ import annotations

import socket
import uuid
from typing import Optional

from kvsync.utils.env import get_str_env
from kvsync.utils.logging import get_logger

from .liveness import TtlCheck
from .settings import SyncSettings
from .store import CoordinationStore


logger = get_logger("Factory")


def create_store(settings: SyncSettings, backend: Optional[str] = None) -> CoordinationStore:
    """Instantiate a backend: explicit argument, then ``KVSYNC_BACKEND``, then settings."""
    backend = (backend or get_str_env("KVSYNC_BACKEND") or settings.backend).lower()
    if backend == "consul":
        from .store_consul import ConsulStore

        logger.debug("Using Consul at %s", settings.consul.url)
        return ConsulStore(
            str(settings.consul.url),
            token=settings.consul.token,
            datacenter=settings.consul.datacenter,
            timeout=settings.consul.timeout,
        )
    if backend == "redis":
        from .store_redis import RedisStore

        logger.debug("Using Redis at %s", settings.redis.url)
        return RedisStore(settings.redis.url, namespace=settings.redis.namespace)
    if backend == "memory":
        from .store_memory import InMemoryStore

        return InMemoryStore()
    raise ValueError(f"Unknown kvsync backend: {backend!r}")


def create_check(settings: SyncSettings, store: CoordinationStore, name: str) -> Optional[TtlCheck]:
    if not settings.check.enabled:
        return None
    check_id = f"kvsync:{name}:{socket.gethostname()}:{uuid.uuid4().hex[:8]}"
    return TtlCheck(
        store,
        check_id,
        name=f"kvsync {name}",
        ttl=settings.check.ttl_seconds,
        interval=settings.check.interval_seconds,
    )
