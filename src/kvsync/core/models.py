"""Data models shared by the store backends and the primitives."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedStateError


class SessionBehavior(str, enum.Enum):
    """What the store does with keys bound to a session once it dies."""

    RELEASE = "release"
    DELETE = "delete"


class HoldState(enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    HELD = "held"


@dataclass(frozen=True, slots=True)
class KVEntry:
    """A single key as read from the store."""

    key: str
    value: bytes
    modify_index: int
    session: Optional[str] = None


class ContenderValue(BaseModel):
    """Capacity and current holder set of a semaphore.

    Serialized as ``{"Limit": n, "Holders": [...]}``. Parsing also accepts the
    map-shaped holders written by Consul's own semaphore recipe.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    limit: int = Field(alias="Limit", gt=0)
    holders: List[str] = Field(default_factory=list, alias="Holders")

    @field_validator("holders", mode="before")
    @classmethod
    def _normalize_holders(cls, value):
        if value is None:
            return []
        if isinstance(value, dict):
            # Consul's own semaphore recipe stores holders as {session: true}
            return [session for session, held in value.items() if held]
        if isinstance(value, (list, tuple)):
            return list(dict.fromkeys(value))
        return value

    @classmethod
    def parse(cls, raw: Union[bytes, str]) -> "ContenderValue":
        try:
            return cls.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            raise MalformedStateError(f"Invalid semaphore control value: {exc}") from exc

    def serialize(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @property
    def is_full(self) -> bool:
        return len(self.holders) >= self.limit

    def with_holder(self, session_id: str) -> "ContenderValue":
        if session_id in self.holders:
            return self
        return self.model_copy(update={"holders": [*self.holders, session_id]})

    def without_holder(self, session_id: str) -> "ContenderValue":
        return self.model_copy(update={"holders": [h for h in self.holders if h != session_id]})

    def only_live(self, live_sessions: Iterable[str]) -> "ContenderValue":
        live = set(live_sessions)
        return self.model_copy(update={"holders": [h for h in self.holders if h in live]})
