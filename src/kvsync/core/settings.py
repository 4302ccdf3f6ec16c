"""Settings loader."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError

from .backoff import BackoffPolicy


Backend = Literal["consul", "redis", "memory"]


class ConsulSettings(BaseModel):
    url: HttpUrl = Field(default="http://127.0.0.1:8500", validate_default=True)
    token: Optional[str] = None  # falls back to CONSUL_HTTP_TOKEN
    datacenter: Optional[str] = None
    timeout: float = Field(default=10.0, gt=0)


class RedisSettings(BaseModel):
    url: str = "redis://localhost:6379/0"
    namespace: str = "kvsync:"


class CheckSettings(BaseModel):
    """TTL check linked to every session; disabled means sessions live until destroyed."""

    enabled: bool = False
    ttl_seconds: float = Field(default=10.0, gt=0)
    interval_seconds: Optional[float] = Field(default=None, gt=0)


class PollSettings(BaseModel):
    """Pacing of the semaphore wait loop, which has no attempt cap."""

    model_config = ConfigDict(extra="forbid")

    interval_seconds: float = Field(default=0.3, ge=0)
    jitter_seconds: float = Field(default=0.0, ge=0)

    def to_policy(self) -> BackoffPolicy:
        return BackoffPolicy(interval=self.interval_seconds, jitter=self.jitter_seconds)


class BackoffSettings(PollSettings):
    interval_seconds: float = Field(default=0.5, ge=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)

    def to_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            interval=self.interval_seconds,
            jitter=self.jitter_seconds,
            max_attempts=self.max_attempts,
        )


class SyncSettings(BaseModel):
    backend: Backend = "consul"
    session_name: str = "kvsync"
    consul: ConsulSettings = Field(default_factory=ConsulSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    check: CheckSettings = Field(default_factory=CheckSettings)
    lock_backoff: BackoffSettings = Field(default_factory=BackoffSettings)
    semaphore_backoff: PollSettings = Field(default_factory=PollSettings)

    @classmethod
    def from_file(cls, path: Path) -> "SyncSettings":
        data = yaml.safe_load(path.read_text()) or {}
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid kvsync settings: {exc}") from exc
