"""Distributed lock and semaphore on top of a session-aware key-value store."""

from .core import (
    AlreadyHeldError,
    BackoffPolicy,
    ContenderValue,
    InMemoryStore,
    Lock,
    MalformedStateError,
    Semaphore,
    StoreError,
    StoreWriteFailure,
    TtlCheck,
)

__all__ = [
    "__version__",
    "AlreadyHeldError",
    "BackoffPolicy",
    "ContenderValue",
    "InMemoryStore",
    "Lock",
    "MalformedStateError",
    "Semaphore",
    "StoreError",
    "StoreWriteFailure",
    "TtlCheck",
]

__version__ = "0.1.0"
