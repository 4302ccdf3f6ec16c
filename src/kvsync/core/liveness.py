"""Liveness checks that keep a session alive while its owner is."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Optional, Protocol

from kvsync.utils.logging import get_logger

from .store import CheckRegistry


class LivenessCheck(Protocol):
    check_id: str

    async def start(self) -> None: ...
    async def stop(self) -> None: ...


class TtlCheck:
    """TTL check registered on the store and passed by a background heartbeat.

    If the process stalls or dies the heartbeat stops, the check lapses and
    every session linked to it is invalidated by the store.
    """

    def __init__(
        self,
        registry: CheckRegistry,
        check_id: str,
        *,
        name: Optional[str] = None,
        ttl: float = 10.0,
        interval: Optional[float] = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Check TTL must be > 0")
        self.check_id = check_id
        self._registry = registry
        self._name = name or check_id
        self._ttl = ttl
        self._interval = interval if interval is not None else ttl / 3
        self._task: Optional[asyncio.Task[None]] = None
        self.logger = get_logger("TtlCheck")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        await self._registry.register_check(self.check_id, self._name, self._ttl)
        self.logger.debug("Registered check %s (ttl=%ss)", self.check_id, self._ttl)
        self._task = asyncio.create_task(self._heartbeat(), name=f"heartbeat-{self.check_id}")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        await self._registry.deregister_check(self.check_id)
        self.logger.debug("Deregistered check %s", self.check_id)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._registry.pass_check(self.check_id)
            except Exception as exc:
                self.logger.warning("Heartbeat for check %s failed: %s", self.check_id, exc)
