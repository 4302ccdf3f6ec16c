"""CLI entrypoint: run a command while holding a lock or semaphore slot."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from kvsync.core.factory import create_check, create_store
from kvsync.core.lock import Lock
from kvsync.core.semaphore import Semaphore
from kvsync.core.settings import SyncSettings
from kvsync.core.store import CoordinationStore
from kvsync.utils.logging import get_logger


logger = get_logger("KVSyncCLI")

NOT_ACQUIRED_EXIT_CODE = 1


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def _non_negative_float(text: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid float value: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kvsync", description="Distributed lock and semaphore runner.")
    parser.add_argument("--config", type=Path, default=None, help="Path to kvsync YAML settings")
    parser.add_argument("--backend", choices=["consul", "redis", "memory"], default=None, help="Override the store backend")
    commands = parser.add_subparsers(dest="action", required=True)

    lock = commands.add_parser("lock", help="Run a command while holding lock/<path>")
    lock.add_argument("path")
    lock.add_argument("--no-block", action="store_true", help="Fail instead of waiting for the lock")
    lock.add_argument("--interval", type=_non_negative_float, default=None, help="Seconds between attempts")
    lock.add_argument("--max-attempts", type=_positive_int, default=None, help="Give up after this many attempts")

    semaphore = commands.add_parser("semaphore", help="Run a command while holding a slot of semaphore/<path>")
    semaphore.add_argument("path")
    semaphore.add_argument("--limit", type=_positive_int, required=True)
    semaphore.add_argument("--no-block", action="store_true", help="Fail instead of waiting for a slot")

    inspect = commands.add_parser("inspect", help="Print the holders of semaphore/<path>")
    inspect.add_argument("path")
    return parser


def _split_command(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split ``kvsync ... -- CMD ...`` into kvsync arguments and the child command."""
    argv = list(argv)
    if "--" not in argv:
        return argv, []
    index = argv.index("--")
    return argv[:index], argv[index + 1 :]


async def _run_child(command: Sequence[str]) -> int:
    process = await asyncio.create_subprocess_exec(*command)
    return await process.wait()


async def _run_locked(args: argparse.Namespace, settings: SyncSettings, store: CoordinationStore, command: List[str]) -> int:
    lock = Lock(
        store,
        args.path,
        session_name=settings.session_name,
        check=create_check(settings, store, f"lock/{args.path}"),
        backoff=settings.lock_backoff.to_policy(),
    )
    if not await lock.lock(block=not args.no_block, interval=args.interval, max_attempts=args.max_attempts):
        logger.warning("Could not acquire %s", lock.key)
        return NOT_ACQUIRED_EXIT_CODE
    try:
        return await _run_child(command)
    finally:
        await lock.unlock()


async def _run_in_semaphore(args: argparse.Namespace, settings: SyncSettings, store: CoordinationStore, command: List[str]) -> int:
    semaphore = Semaphore(
        store,
        args.limit,
        args.path,
        session_name=settings.session_name,
        check=create_check(settings, store, f"semaphore/{args.path}"),
        backoff=settings.semaphore_backoff.to_policy(),
    )
    if not await semaphore.acquire(block=not args.no_block):
        logger.warning("No free slot in %s", semaphore.control_key)
        return NOT_ACQUIRED_EXIT_CODE
    try:
        return await _run_child(command)
    finally:
        await semaphore.release()


async def _inspect(args: argparse.Namespace, store: CoordinationStore) -> int:
    # describe() only reads the control key; the limit argument is not consulted
    value = await Semaphore(store, 1, args.path).describe()
    if value is None:
        print(json.dumps({"path": args.path, "exists": False}))
        return 0
    print(json.dumps({"path": args.path, "exists": True, "limit": value.limit, "holders": value.holders}))
    return 0


async def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    own_args, command = _split_command(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(own_args)
    if args.action in ("lock", "semaphore") and not command:
        parser.error("a command to run is required after '--'")
    settings = SyncSettings.from_file(args.config) if args.config else SyncSettings()

    store = create_store(settings, backend=args.backend)
    try:
        if args.action == "lock":
            return await _run_locked(args, settings, store, command)
        if args.action == "semaphore":
            return await _run_in_semaphore(args, settings, store, command)
        return await _inspect(args, store)
    finally:
        await store.close()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
