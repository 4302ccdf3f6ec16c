"""Creation and teardown of store sessions."""

from __future__ import annotations

from typing import Optional

from kvsync.utils.logging import get_logger

from .liveness import LivenessCheck
from .models import SessionBehavior
from .store import SessionService


logger = get_logger("SessionLifecycle")


class SessionLifecycle:
    """Creates one session per acquire attempt and destroys it afterwards.

    Keys written with ``acquire_session=<id>`` count as held by this process
    for as long as the session lives; when it dies the store deletes them.
    Sessions carry no TTL of their own, only the optional linked check.
    """

    def __init__(self, sessions: SessionService, *, check: Optional[LivenessCheck] = None) -> None:
        self._sessions = sessions
        self._check = check

    @property
    def check(self) -> Optional[LivenessCheck]:
        return self._check

    async def create(self, name: str) -> str:
        checks = None
        if self._check is not None:
            # The check has to be live before a session can link to it.
            await self._check.start()
            checks = [self._check.check_id]
        try:
            session_id = await self._sessions.create_session(name, checks=checks, behavior=SessionBehavior.DELETE)
        except BaseException:
            if self._check is not None:
                await self._check.stop()
            raise
        logger.debug("Created session %s (%s)", session_id, name)
        return session_id

    async def destroy(self, session_id: str) -> None:
        try:
            if self._check is not None:
                await self._check.stop()
        finally:
            await self._sessions.destroy_session(session_id)
            logger.debug("Destroyed session %s", session_id)
