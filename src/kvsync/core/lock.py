"""Distributed mutex built on session-bound key ownership."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from kvsync.utils.logging import get_logger

from .backoff import DEFAULT_SLEEPER, BackoffPolicy, Sleeper
from .errors import AlreadyHeldError
from .liveness import LivenessCheck
from .models import HoldState
from .session import SessionLifecycle
from .store import CoordinationStore


LOCK_PREFIX = "lock/"


def _audit(action: str) -> str:
    return f"{action}:{dt.datetime.now(dt.timezone.utc).isoformat()}"


class Lock:
    """Mutual exclusion on ``lock/<path>``.

    The store arbitrates: a session-acquire write only succeeds while no other
    session owns the key, and the key is released when the owning session dies.
    """

    def __init__(
        self,
        store: CoordinationStore,
        path: str,
        *,
        session_name: str = "lock",
        check: Optional[LivenessCheck] = None,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Sleeper = DEFAULT_SLEEPER,
    ) -> None:
        self._store = store
        self._key = LOCK_PREFIX + path.strip("/")
        self._session_name = session_name
        self._sessions = SessionLifecycle(store, check=check)
        self._backoff = backoff or BackoffPolicy(interval=0.5)
        self._sleep = sleep
        self._state = HoldState.IDLE
        self._session_id: Optional[str] = None
        self.logger = get_logger("Lock")

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> HoldState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def lock(
        self,
        block: bool = False,
        *,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> bool:
        """Try to take the lock.

        Non-blocking calls make a single attempt and ignore ``interval`` and
        ``max_attempts``. Blocking calls retry every ``interval`` seconds until
        they succeed or ``max_attempts`` writes have been refused; without a
        cap from either the arguments or the backoff policy they wait forever.
        """
        if self._state is not HoldState.IDLE:
            self.logger.error("%s - already %s", self._key, self._state.value)
            raise AlreadyHeldError(f"{self._key} is already {self._state.value}")
        policy = self._backoff.with_overrides(interval=interval, max_attempts=max_attempts)

        self._state = HoldState.ACQUIRING
        try:
            session_id = await self._sessions.create(self._session_name)
        except BaseException:
            self._state = HoldState.IDLE
            raise

        attempt = 1
        try:
            while True:
                if await self._store.put(self._key, _audit("lock"), acquire_session=session_id):
                    self._session_id = session_id
                    self._state = HoldState.HELD
                    self.logger.debug("Acquired %s with session %s", self._key, session_id)
                    return True
                if not block or policy.exhausted(attempt):
                    break
                attempt += 1
                await self._sleep(policy.next_delay())
        except BaseException:
            await self._abandon(session_id)
            raise

        self.logger.debug("Gave up on %s after %d attempt(s)", self._key, attempt)
        await self._abandon(session_id)
        return False

    async def unlock(self) -> bool:
        """Release the lock; returns whether the store accepted the release write."""
        if self._state is not HoldState.HELD or self._session_id is None:
            return False
        session_id = self._session_id
        try:
            released = await self._store.put(self._key, _audit("unlock"), release_session=session_id)
        finally:
            await self._abandon(session_id)
        self.logger.debug("Released %s (accepted=%s)", self._key, released)
        return released

    async def _abandon(self, session_id: str) -> None:
        try:
            await self._sessions.destroy(session_id)
        finally:
            self._session_id = None
            self._state = HoldState.IDLE

    async def __aenter__(self) -> bool:
        return await self.lock(block=True)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._state is HoldState.HELD:
            await self.unlock()
