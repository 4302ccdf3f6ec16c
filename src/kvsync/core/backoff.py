"""Retry pacing for the acquire loops."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional


Sleeper = Callable[[float], Awaitable[None]]

DEFAULT_SLEEPER: Sleeper = asyncio.sleep


@dataclass(frozen=True)
class BackoffPolicy:
    """Fixed interval with optional jitter and attempt cap."""

    interval: float = 0.5
    jitter: float = 0.0
    max_attempts: Optional[int] = None

    def __post_init__(self) -> None:
        if self.interval < 0 or self.jitter < 0:
            raise ValueError("Backoff interval and jitter must be >= 0")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def next_delay(self) -> float:
        if not self.jitter:
            return self.interval
        return self.interval + random.uniform(0, self.jitter)

    def exhausted(self, attempt: int) -> bool:
        """True once ``attempt`` attempts have been made and no more are allowed."""
        return self.max_attempts is not None and attempt >= self.max_attempts

    def with_overrides(self, *, interval: Optional[float] = None, max_attempts: Optional[int] = None) -> "BackoffPolicy":
        changes = {}
        if interval is not None:
            changes["interval"] = interval
        if max_attempts is not None:
            changes["max_attempts"] = max_attempts
        return replace(self, **changes) if changes else self
