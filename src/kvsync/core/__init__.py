"""Coordination primitives and store backends."""

from .backoff import BackoffPolicy
from .errors import AlreadyHeldError, KVSyncError, MalformedStateError, StoreError, StoreWriteFailure
from .liveness import LivenessCheck, TtlCheck
from .lock import Lock
from .models import ContenderValue, HoldState, KVEntry, SessionBehavior
from .semaphore import Semaphore
from .session import SessionLifecycle
from .store import CoordinationStore
from .store_memory import InMemoryStore

__all__ = [
    "AlreadyHeldError",
    "BackoffPolicy",
    "ContenderValue",
    "CoordinationStore",
    "HoldState",
    "InMemoryStore",
    "KVEntry",
    "KVSyncError",
    "LivenessCheck",
    "Lock",
    "MalformedStateError",
    "Semaphore",
    "SessionBehavior",
    "SessionLifecycle",
    "StoreError",
    "StoreWriteFailure",
    "TtlCheck",
]
