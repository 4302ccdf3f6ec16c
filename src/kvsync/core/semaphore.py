"""Distributed counting semaphore built on a CAS-guarded control key."""

from __future__ import annotations

from typing import List, Optional

from kvsync.utils.logging import get_logger

from .backoff import DEFAULT_SLEEPER, BackoffPolicy, Sleeper
from .errors import AlreadyHeldError, StoreWriteFailure
from .liveness import LivenessCheck
from .models import ContenderValue, HoldState, KVEntry
from .session import SessionLifecycle
from .store import CoordinationStore


SEMAPHORE_PREFIX = "semaphore/"
CONTROL_KEY = ".lock"


class Semaphore:
    """At most ``limit`` concurrent holders of ``semaphore/<path>``.

    ``<path>/.lock`` stores the :class:`ContenderValue`; every contender also
    writes ``<path>/<session>`` bound to its session. A holder whose marker has
    disappeared (session dead) is dropped from the control value the next time
    a contender finds the semaphore full.
    """

    def __init__(
        self,
        store: CoordinationStore,
        limit: int,
        path: str,
        *,
        session_name: str = "semaphore",
        check: Optional[LivenessCheck] = None,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Sleeper = DEFAULT_SLEEPER,
    ) -> None:
        if limit < 1:
            raise ValueError("Semaphore limit must be >= 1")
        if backoff is not None and backoff.max_attempts is not None:
            # a blocking acquire only ends on a free slot or cancellation
            raise ValueError("Semaphore backoff cannot cap attempts; cancel the acquiring task instead")
        self._store = store
        self._limit = limit
        self._prefix = SEMAPHORE_PREFIX + path.strip("/")
        self._session_name = session_name
        self._sessions = SessionLifecycle(store, check=check)
        self._backoff = backoff or BackoffPolicy(interval=0.3)
        self._sleep = sleep
        self._state = HoldState.IDLE
        self._session_id: Optional[str] = None
        self.logger = get_logger("Semaphore")

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def control_key(self) -> str:
        return f"{self._prefix}/{CONTROL_KEY}"

    def marker_key(self, session_id: str) -> str:
        return f"{self._prefix}/{session_id}"

    @property
    def state(self) -> HoldState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def acquire(self, block: bool = False) -> bool:
        """Take one slot.

        A non-blocking call returns False as soon as it observes the semaphore
        full. A blocking call keeps polling until a slot frees up; it has no
        timeout of its own, cancel the awaiting task to give up.
        """
        if self._state is not HoldState.IDLE:
            self.logger.error("%s - already %s", self._session_id or self._prefix, self._state.value)
            raise AlreadyHeldError(f"{self._prefix} is already {self._state.value}")

        self._state = HoldState.ACQUIRING
        try:
            session_id = await self._sessions.create(self._session_name)
        except BaseException:
            self._state = HoldState.IDLE
            raise

        try:
            acquired = await self._contend(session_id, block)
        except BaseException:
            await self._abandon(session_id)
            raise
        if not acquired:
            await self._abandon(session_id)
            return False
        self._session_id = session_id
        self._state = HoldState.HELD
        return True

    async def _contend(self, session_id: str, block: bool) -> bool:
        marker = self.marker_key(session_id)
        if not await self._store.put(marker, b"", acquire_session=session_id):
            self.logger.error("Failed to add contender entry: %s, %s", marker, session_id)
            raise StoreWriteFailure(f"Failed to add contender entry {marker} for session {session_id}")

        while True:
            entry = await self._store.get(self.control_key)
            if entry is None:
                value = ContenderValue(limit=self._limit, holders=[session_id])
                if await self._store.put(self.control_key, value.serialize(), cas=0):
                    self.logger.debug("Created %s and took the first slot", self.control_key)
                    return True
                continue

            value = ContenderValue.parse(entry.value)
            if value.limit != self._limit:
                self.logger.warning(
                    "%s has limit %d, configured %d; using the stored limit",
                    self.control_key,
                    value.limit,
                    self._limit,
                )
            if value.is_full:
                self.logger.debug("Semaphore limited %d, removing invalid holders", value.limit)
                await self.clear_invalid_holders(entry)
                if not block:
                    return False
                await self._sleep(self._backoff.next_delay())
                continue

            updated = value.with_holder(session_id)
            if await self._store.put(self.control_key, updated.serialize(), cas=entry.modify_index):
                return True

    async def clear_invalid_holders(self, entry: Optional[KVEntry] = None) -> List[str]:
        """Drop holders whose marker key no longer carries a live session.

        Writes back with the modify index of ``entry`` (read fresh when not
        given); a conflicting write is left to win. Returns the removed ids.
        """
        if entry is None:
            entry = await self._store.get(self.control_key)
            if entry is None:
                return []
        value = ContenderValue.parse(entry.value)

        live = {
            marker.session
            for marker in await self._store.list_prefix(self._prefix + "/")
            if marker.session
        }
        cleaned = value.only_live(live)
        removed = [holder for holder in value.holders if holder not in cleaned.holders]
        if not removed:
            return []

        if await self._store.put(self.control_key, cleaned.serialize(), cas=entry.modify_index):
            self.logger.debug("Removed invalid holders from %s: %s", self.control_key, removed)
            return removed
        self.logger.debug("Cleanup of %s lost a race; leaving it to the next pass", self.control_key)
        return []

    async def release(self) -> None:
        if self._state is not HoldState.HELD or self._session_id is None:
            return
        session_id = self._session_id
        try:
            while True:
                entry = await self._store.get(self.control_key)
                if entry is None:
                    await self._store.delete(self.marker_key(session_id))
                    break
                value = ContenderValue.parse(entry.value)
                await self._store.delete(self.marker_key(session_id))
                if session_id not in value.holders:
                    break
                updated = value.without_holder(session_id)
                if await self._store.put(self.control_key, updated.serialize(), cas=entry.modify_index):
                    break
        finally:
            await self._abandon(session_id)

    async def describe(self) -> Optional[ContenderValue]:
        entry = await self._store.get(self.control_key)
        return ContenderValue.parse(entry.value) if entry else None

    async def _abandon(self, session_id: str) -> None:
        try:
            await self._sessions.destroy(session_id)
        finally:
            self._session_id = None
            self._state = HoldState.IDLE

    async def __aenter__(self) -> bool:
        return await self.acquire(block=True)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._state is HoldState.HELD:
            await self.release()
