"""Exceptions raised by the coordination primitives and store backends."""

from __future__ import annotations


class KVSyncError(RuntimeError):
    """Base error for kvsync."""


class AlreadyHeldError(KVSyncError):
    """Acquire was called on an instance that already holds (or is acquiring)."""


class StoreWriteFailure(KVSyncError):
    """The store refused a write that cannot be retried meaningfully."""


class MalformedStateError(KVSyncError, ValueError):
    """A stored control value could not be decoded."""


class StoreError(KVSyncError):
    """Transport or protocol failure while talking to a store backend."""
