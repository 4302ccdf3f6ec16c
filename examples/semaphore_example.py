"""Five workers sharing two slots of one semaphore.

Runs against the in-memory store by default; pass ``--config`` with a YAML
file (see ``config/kvsync.example.yml``) to use Consul or Redis instead.
"""

from __future__ import annotations

import argparse
import asyncio
import random
from pathlib import Path

from kvsync.core.factory import create_check, create_store
from kvsync.core.semaphore import Semaphore
from kvsync.core.settings import SyncSettings
from kvsync.utils.logging import get_logger


logger = get_logger("SemaphoreExample")


async def worker(index: int, settings: SyncSettings, store) -> None:
    semaphore = Semaphore(
        store,
        2,
        "example/workers",
        session_name=f"worker-{index}",
        check=create_check(settings, store, f"worker-{index}"),
        backoff=settings.semaphore_backoff.to_policy(),
    )
    async with semaphore:
        logger.info("worker %d holds a slot (session %s)", index, semaphore.session_id)
        await asyncio.sleep(random.uniform(0.2, 0.6))
    logger.info("worker %d released its slot", index)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Semaphore demo.")
    parser.add_argument("--config", type=Path, default=None)
    args = parser.parse_args()

    settings = SyncSettings.from_file(args.config) if args.config else SyncSettings(backend="memory")
    store = create_store(settings)
    try:
        await asyncio.gather(*(worker(i, settings, store) for i in range(5)))
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
