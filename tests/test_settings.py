from __future__ import annotations

import pytest

from kvsync.core.backoff import BackoffPolicy
from kvsync.core.factory import create_check, create_store
from kvsync.core.liveness import TtlCheck
from kvsync.core.settings import SyncSettings
from kvsync.core.store_consul import ConsulStore
from kvsync.core.store_memory import InMemoryStore


def test_defaults():
    settings = SyncSettings()
    assert settings.backend == "consul"
    assert settings.lock_backoff.to_policy() == BackoffPolicy(interval=0.5)
    assert settings.semaphore_backoff.to_policy() == BackoffPolicy(interval=0.3)
    assert not settings.check.enabled


def test_from_file(tmp_path):
    path = tmp_path / "kvsync.yml"
    path.write_text(
        """
backend: memory
session_name: batch
check:
  enabled: true
  ttl_seconds: 15
lock_backoff:
  interval_seconds: 0.1
  max_attempts: 4
"""
    )
    settings = SyncSettings.from_file(path)
    assert settings.backend == "memory"
    assert settings.session_name == "batch"
    assert settings.check.ttl_seconds == 15
    assert settings.lock_backoff.to_policy() == BackoffPolicy(interval=0.1, max_attempts=4)


def test_from_file_rejects_invalid_values(tmp_path):
    path = tmp_path / "kvsync.yml"
    path.write_text("backend: zookeeper\n")
    with pytest.raises(ValueError, match="Invalid kvsync settings"):
        SyncSettings.from_file(path)


def test_backend_selection_precedence(monkeypatch):
    settings = SyncSettings(backend="consul")
    monkeypatch.setenv("KVSYNC_BACKEND", "memory")
    assert isinstance(create_store(settings), InMemoryStore)
    assert isinstance(create_store(settings, backend="consul"), ConsulStore)


def test_create_check_only_when_enabled():
    store = InMemoryStore()
    assert create_check(SyncSettings(), store, "jobs") is None

    settings = SyncSettings.model_validate({"check": {"enabled": True, "ttl_seconds": 6}})
    check = create_check(settings, store, "jobs")
    assert isinstance(check, TtlCheck)
    assert check.check_id.startswith("kvsync:jobs:")


def test_backoff_policy():
    policy = BackoffPolicy(interval=0.2, jitter=0.1, max_attempts=3)
    assert 0.2 <= policy.next_delay() <= 0.3
    assert not policy.exhausted(2)
    assert policy.exhausted(3)
    assert not BackoffPolicy().exhausted(10_000)
    assert policy.with_overrides(max_attempts=5).max_attempts == 5
    assert policy.with_overrides() is policy
    with pytest.raises(ValueError):
        BackoffPolicy(interval=-1)
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=0)


def test_semaphore_backoff_has_no_attempt_cap(tmp_path):
    path = tmp_path / "kvsync.yml"
    path.write_text("semaphore_backoff:\n  interval_seconds: 1\n  max_attempts: 2\n")
    with pytest.raises(ValueError, match="Invalid kvsync settings"):
        SyncSettings.from_file(path)

    settings = SyncSettings.model_validate({"semaphore_backoff": {"interval_seconds": 1}})
    assert settings.semaphore_backoff.to_policy() == BackoffPolicy(interval=1)
